"""Static key pairs for the holder, issuer and verifier roles."""

import json
import logging
from dataclasses import dataclass
from typing import Optional, Union

from acapy_agent.wallet.util import b64_to_bytes, bytes_to_b64
from aries_askar import Key, KeyAlg

from .error import EncodingError

LOGGER = logging.getLogger(__name__)

DID_JWK_PREFIX = "did:jwk:"

JWS_ALGS = {
    KeyAlg.ED25519: "EdDSA",
    KeyAlg.P256: "ES256",
}


def jws_alg(key: Key) -> str:
    """Return the JWS alg matching a key."""
    alg = JWS_ALGS.get(key.algorithm)
    if not alg:
        raise EncodingError(f"Unsupported key algorithm: {key.algorithm}")
    return alg


def public_jwk(key: Key) -> dict:
    """Return the public JWK of a key as a dict."""
    return json.loads(key.get_jwk_public())


def public_key(key: Key) -> Key:
    """Strip the secret part of a key."""
    return Key.from_jwk(key.get_jwk_public())


def key_from_jwk(jwk: Union[dict, str]) -> Key:
    """Load a key from a JWK, raising EncodingError on malformed input."""
    if isinstance(jwk, str):
        try:
            jwk = json.loads(jwk)
        except ValueError as err:
            raise EncodingError("JWK is not valid JSON") from err
    if not isinstance(jwk, dict):
        raise EncodingError("JWK must be an object")
    jwk = {k: v for k, v in jwk.items() if k not in ("use", "kid")}
    try:
        return Key.from_jwk(jwk)
    except Exception as err:
        raise EncodingError("Unable to load key from JWK") from err


def did_jwk(key: Key) -> str:
    """Derive a did:jwk identifier for a key."""
    jwk = public_jwk(key)
    jwk["use"] = "sig"
    encoded = json.dumps(jwk).encode()
    return f"{DID_JWK_PREFIX}{bytes_to_b64(encoded, urlsafe=True, pad=False)}"


def key_from_did_jwk(did: str) -> Key:
    """Resolve the public key embedded in a did:jwk identifier."""
    if not did.startswith(DID_JWK_PREFIX):
        raise EncodingError("Not a did:jwk")
    did = did.split("#", 1)[0]
    try:
        jwk = json.loads(b64_to_bytes(did[len(DID_JWK_PREFIX) :], urlsafe=True))
    except ValueError as err:
        raise EncodingError("Malformed did:jwk") from err
    return key_from_jwk(jwk)


@dataclass
class KeyMaterial:
    """Key pairs consumed by the core.

    Generation and storage policy is left to the deployment; the core only
    needs a signing key per role.
    """

    holder: Key
    issuer: Key
    verifier: Key

    @classmethod
    def generate(cls, alg: KeyAlg = KeyAlg.P256) -> "KeyMaterial":
        """Generate ephemeral keys for every role."""
        return cls(
            holder=Key.generate(alg),
            issuer=Key.generate(alg),
            verifier=Key.generate(alg),
        )

    @classmethod
    def from_config(
        cls,
        config,
        holder: Optional[Key] = None,
        alg: KeyAlg = KeyAlg.P256,
    ) -> "KeyMaterial":
        """Load issuer and verifier keys from config, generating what is absent."""
        issuer = key_from_jwk(config.issuer_jwk) if config.issuer_jwk else None
        verifier = key_from_jwk(config.verifier_jwk) if config.verifier_jwk else None
        if issuer is None or verifier is None:
            LOGGER.warning("No configured key for some roles; using ephemeral keys")
        return cls(
            holder=holder or Key.generate(alg),
            issuer=issuer or Key.generate(alg),
            verifier=verifier or Key.generate(alg),
        )

    @property
    def verifier_id(self) -> str:
        """Client identifier of the verifier."""
        return did_jwk(self.verifier)
