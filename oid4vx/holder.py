"""Holder-side helpers: proofs and presentations."""

import logging
import time
from typing import Callable, Optional, Sequence

from aries_askar import Key

from .error import EncodingError
from .jwt import jwt_decode, jwt_sign, jwt_verify
from .keys import did_jwk, key_from_did_jwk
from .presentation import PRESENTATION_TYP, REQUEST_TYP
from .proof import ProofJWTCodec, issue_proof

LOGGER = logging.getLogger(__name__)


class Holder:
    """A wallet holding one key."""

    def __init__(
        self,
        key: Key,
        identity: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the holder; identity defaults to the key's did:jwk."""
        self.key = key
        self.identity = identity or did_jwk(key)
        self._clock = clock

    def issue_proof(self, audience: str) -> str:
        """Proof of possession for the given credential endpoint."""
        return issue_proof(
            self.identity, audience, self.key, ProofJWTCodec(clock=self._clock)
        )

    def read_request_object(
        self, token: str, verifier_key: Optional[Key] = None
    ) -> dict:
        """Verify a signed request object and return its claims.

        Without an explicit key the verifier key is taken from its did:jwk kid.
        """
        headers, _ = jwt_decode(token)
        if headers.get("typ") != REQUEST_TYP:
            raise EncodingError(f"Request object typ must be '{REQUEST_TYP}'")
        if verifier_key is None:
            verifier_key = key_from_did_jwk(headers.get("kid", ""))
        return dict(jwt_verify(token, verifier_key).payload)

    def present(self, request: dict, fragments: Sequence[str]) -> str:
        """Answer a request with the given credential fragments."""
        for name in ("client_id", "state", "nonce"):
            if not request.get(name):
                raise EncodingError(f"Request object missing {name}")
        payload = {
            "iss": self.identity,
            "aud": request["client_id"],
            "iat": int(self._clock()),
            "state": request["state"],
            "nonce": request["nonce"],
            "vp_token": list(fragments),
        }
        LOGGER.debug("Presenting %d credentials", len(fragments))
        return jwt_sign({"typ": PRESENTATION_TYP}, payload, self.key)
