"""Holder proof-of-possession JWTs.

OpenID4VCI 1.0 § 7.2.1.1: the proof binds the holder key to the credential
endpoint (aud), a single-use nonce and an issuance time (iat).
"""

import logging
import time
from dataclasses import asdict, dataclass
from secrets import token_urlsafe
from typing import Callable, Optional, Union

from aries_askar import Key

from .config import DEFAULT_CLOCK_SKEW
from .error import AudienceMismatch, EncodingError, NonceReused, TokenExpired
from .jwt import jwt_decode, jwt_sign, jwt_verify
from .keys import key_from_jwk, public_jwk
from .stores import NonceStore

LOGGER = logging.getLogger(__name__)

PROOF_TYP = "openid4vci-proof+jwt"
NONCE_BYTES = 16


@dataclass(frozen=True)
class ProofPayload:
    """Claims of a holder proof."""

    nonce: str
    aud: str
    iss: str
    iat: int

    @classmethod
    def from_claims(cls, claims: dict) -> "ProofPayload":
        """Build a payload from decoded claims, rejecting missing fields."""
        missing = [
            name
            for name in ("nonce", "aud", "iss", "iat")
            if claims.get(name) in (None, "")
        ]
        if missing:
            raise EncodingError(f"Proof payload missing: {', '.join(missing)}")
        if not isinstance(claims["iat"], int) or isinstance(claims["iat"], bool):
            raise EncodingError("Proof iat must be an integer timestamp")
        for name in ("nonce", "aud", "iss"):
            if not isinstance(claims[name], str):
                raise EncodingError(f"Proof {name} must be a string")
        return cls(
            nonce=claims["nonce"],
            aud=claims["aud"],
            iss=claims["iss"],
            iat=claims["iat"],
        )


class ProofJWTCodec:
    """Sign and verify holder proofs."""

    def __init__(
        self,
        clock_skew: int = DEFAULT_CLOCK_SKEW,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the codec with an accepted iat window of +/- clock_skew."""
        self.clock_skew = clock_skew
        self._clock = clock

    def now(self) -> int:
        """Current time in seconds."""
        return int(self._clock())

    def issue(self, payload: Union[ProofPayload, dict], signing_key: Key) -> str:
        """Serialize and sign a proof payload."""
        if payload is None:
            raise EncodingError("Proof payload is required")
        claims = payload if isinstance(payload, dict) else asdict(payload)
        claims = asdict(ProofPayload.from_claims(claims))
        headers = {
            "typ": PROOF_TYP,
            "jwk": public_jwk(signing_key),
            "kid": signing_key.get_jwk_thumbprint(),
        }
        return jwt_sign(headers, claims, signing_key)

    async def verify(
        self,
        token: str,
        verification_key: Optional[Key],
        expected_audience: str,
        nonce_store: NonceStore,
    ) -> ProofPayload:
        """Verify a proof and consume its nonce.

        When verification_key is None the key in the proof's jwk header is used.
        """
        headers, _ = jwt_decode(token)
        if headers.get("typ") != PROOF_TYP:
            raise EncodingError(f"Invalid proof: typ must be '{PROOF_TYP}'")

        if verification_key is None:
            if "jwk" not in headers:
                raise EncodingError("No key material in proof")
            verification_key = key_from_jwk(headers["jwk"])

        result = jwt_verify(token, verification_key)
        payload = ProofPayload.from_claims(result.payload)

        if payload.aud != expected_audience:
            raise AudienceMismatch("Proof audience does not match credential endpoint")

        if abs(self.now() - payload.iat) > self.clock_skew:
            raise TokenExpired("Proof iat outside accepted window")

        # Entries outlive the iat window, after which the token is rejected anyway.
        if not await nonce_store.consume(
            payload.nonce, payload.iat + self.clock_skew + 1
        ):
            raise NonceReused("Invalid proof: used nonce")

        LOGGER.info("Verified holder proof for %s", payload.iss)
        return payload


def issue_proof(
    claimed_identity: str,
    audience: str,
    signing_key: Key,
    codec: Optional[ProofJWTCodec] = None,
) -> str:
    """Holder-side entry point: mint a fresh proof for the credential endpoint."""
    codec = codec or ProofJWTCodec()
    payload = ProofPayload(
        nonce=token_urlsafe(NONCE_BYTES),
        aud=audience,
        iss=claimed_identity,
        iat=codec.now(),
    )
    return codec.issue(payload, signing_key)
