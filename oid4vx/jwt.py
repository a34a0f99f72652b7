"""JWT utilities."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple

from acapy_agent.wallet.jwt import b64_to_dict, dict_to_b64
from acapy_agent.wallet.util import b64_to_bytes, bytes_to_b64
from aries_askar import AskarError, Key

from .error import EncodingError, SignatureInvalid
from .keys import jws_alg

LOGGER = logging.getLogger(__name__)


@dataclass
class JWTVerifyResult:
    """JWT Verification Result."""

    headers: Mapping[str, Any]
    payload: Mapping[str, Any]
    verified: bool


def jwt_sign(headers: Dict[str, Any], payload: Mapping[str, Any], key: Key) -> str:
    """Create a compact signed JWT with the given key."""
    headers = {**headers, "alg": jws_alg(key)}
    if not headers.get("typ", None):
        headers["typ"] = "JWT"

    encoded_headers = dict_to_b64(headers)
    encoded_payload = dict_to_b64(payload)
    sig_bytes = key.sign_message(f"{encoded_headers}.{encoded_payload}".encode())

    sig = bytes_to_b64(sig_bytes, urlsafe=True, pad=False)
    return f"{encoded_headers}.{encoded_payload}.{sig}"


def jwt_decode(jwt: str) -> Tuple[dict, dict]:
    """Decode headers and payload without checking the signature."""
    if not isinstance(jwt, str) or jwt.count(".") != 2:
        raise EncodingError("Invalid JWT format")
    encoded_headers, encoded_payload, _ = jwt.split(".")
    try:
        headers = b64_to_dict(encoded_headers)
        payload = b64_to_dict(encoded_payload)
    except ValueError as err:
        raise EncodingError("Invalid JWT encoding") from err
    if not isinstance(headers, dict) or not isinstance(payload, dict):
        raise EncodingError("JWT header and payload must be objects")
    return headers, payload


def jwt_verify(jwt: str, key: Key) -> JWTVerifyResult:
    """Verify a JWT and return the headers and payload.

    Raises SignatureInvalid when the signature does not verify.
    """
    headers, payload = jwt_decode(jwt)
    encoded_headers, encoded_payload, encoded_signature = jwt.split(".")

    if headers.get("alg") != jws_alg(key):
        raise SignatureInvalid(f"Expected {jws_alg(key)} signature")

    try:
        decoded_signature = b64_to_bytes(encoded_signature, urlsafe=True)
        valid = key.verify_signature(
            f"{encoded_headers}.{encoded_payload}".encode(),
            decoded_signature,
        )
    except (ValueError, AskarError) as err:
        raise SignatureInvalid("Malformed signature") from err

    if not valid:
        raise SignatureInvalid("Signature verification failed")

    return JWTVerifyResult(headers, payload, valid)
