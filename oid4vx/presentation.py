"""OID4VP presentation requests and presentation verification."""

import logging
import time
import uuid
from dataclasses import dataclass, field
from secrets import compare_digest, token_urlsafe
from typing import Any, Callable, Dict, List, Optional, Union

from aries_askar import Key

from sd_credential.disclosure import DisclosureEngine, DisclosureVerifyResult

from .config import Config
from .error import (
    AudienceMismatch,
    ConstraintsUnsatisfied,
    EncodingError,
    NonceMismatch,
    OID4VXError,
    SignatureInvalid,
    TokenExpired,
    UnknownOrExpiredSession,
)
from .jwt import jwt_decode, jwt_sign, jwt_verify
from .keys import did_jwk, key_from_jwk
from .models.presentation_definition import PresentationDefinition
from .models.request_session import RequestSession
from .pex import PresentationExchangeEvaluator, load_definition
from .stores import SessionStore

LOGGER = logging.getLogger(__name__)

STATE_BYTES = 16
NONCE_BYTES = 16
REQUEST_TYP = "oauth-authz-req+jwt"
PRESENTATION_TYP = "vp+jwt"


@dataclass
class SignedRequest:
    """Plaintext state for correlation and the signed request object."""

    state: str
    signed_request_object: str

    def serialize(self) -> dict:
        """JSON form."""
        return {"state": self.state, "signedRequestObject": self.signed_request_object}


class PresentationRequestService:
    """Verifier side: create signed presentation requests."""

    def __init__(
        self,
        config: Config,
        verifier_key: Key,
        session_store: SessionStore,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the service."""
        self.config = config
        self.verifier_key = verifier_key
        self.session_store = session_store
        self._clock = clock

    @property
    def client_id(self) -> str:
        """Verifier identifier wallets address their presentations to."""
        return did_jwk(self.verifier_key)

    async def generate_signed_request_object(
        self, definition: Union[dict, PresentationDefinition]
    ) -> SignedRequest:
        """Create a session and a request object carrying its state and nonce."""
        definition = load_definition(definition)
        # Compiling up front surfaces bad paths or filters before a session exists.
        PresentationExchangeEvaluator.compile(definition)

        now = int(self._clock())
        session = RequestSession(
            state=token_urlsafe(STATE_BYTES),
            nonce=token_urlsafe(NONCE_BYTES),
            definition=definition,
            created_at=now,
        )
        await self.session_store.put(session, self.config.session_ttl)

        payload = {
            "iss": self.client_id,
            "client_id": self.client_id,
            "iat": now,
            "nbf": now,
            "exp": now + self.config.request_ttl,
            "jti": str(uuid.uuid4()),
            "response_type": "vp_token",
            "response_mode": "direct_post",
            "response_uri": self.config.response_uri,
            "state": session.state,
            "nonce": session.nonce,
            "presentation_definition": definition.serialize(),
        }
        headers = {"kid": f"{self.client_id}#0", "typ": REQUEST_TYP}
        token = jwt_sign(headers, payload, self.verifier_key)

        LOGGER.info("Created presentation request for definition %s", definition.id)
        return SignedRequest(session.state, token)


@dataclass
class VerificationResult:
    """Outcome of a presentation: accepted claims or a rejection."""

    state: str
    verified: bool = False
    claims: Dict[str, dict] = field(default_factory=dict)
    presented: List[DisclosureVerifyResult] = field(default_factory=list)
    rejection: Optional[OID4VXError] = None

    @property
    def reason(self) -> Optional[str]:
        """Rejection code, if rejected."""
        return self.rejection.code if self.rejection else None

    def serialize(self) -> dict:
        """JSON form."""
        if not self.verified:
            return {"verified": False, "error": self.reason, "details": str(self.rejection)}
        return {"verified": True, "claims": self.claims}


class PresentationVerificationService:
    """Verifier side: check a presentation token against its request session."""

    STATE_PENDING_SESSION = "pending_session"
    STATE_NONCE_CHECKED = "nonce_checked"
    STATE_CLAIMS_MATCHED = "claims_matched"
    STATE_ACCEPTED = "accepted"
    STATE_REJECTED = "rejected"

    def __init__(
        self,
        config: Config,
        verifier_key: Key,
        issuer_key: Key,
        session_store: SessionStore,
        *,
        engine: Optional[DisclosureEngine] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the service.

        Args:
            config: Verifier configuration
            verifier_key: Key whose did:jwk is the expected audience
            issuer_key: Public key of the trusted credential issuer
            session_store: Store holding sessions created for requests
            engine: Disclosure engine used to re-validate fragments
            clock: Time source
        """
        self.config = config
        self.verifier_key = verifier_key
        self.issuer_key = issuer_key
        self.session_store = session_store
        self.engine = engine or DisclosureEngine(sd_alg=config.sd_alg)
        self._clock = clock

    def _reject(self, state: str, err: OID4VXError) -> VerificationResult:
        LOGGER.warning("Presentation rejected in %s: %s", state, err.code)
        return VerificationResult(self.STATE_REJECTED, rejection=err)

    def _check_holder_binding(self, token: str, presented: List[DisclosureVerifyResult]):
        """The presentation must be signed by the key every credential is bound to."""
        for item in presented:
            if not item.holder_jwk:
                raise SignatureInvalid("Presented credential is not holder bound")
            jwt_verify(token, key_from_jwk(item.holder_jwk))

    async def _take_session(self, payload: dict) -> RequestSession:
        state = payload.get("state")
        if not isinstance(state, str) or not state:
            raise UnknownOrExpiredSession("Presentation carries no state")
        session = await self.session_store.take(state)
        if session is None:
            raise UnknownOrExpiredSession("Unknown or expired request state")
        return session

    def _fragments(self, payload: dict) -> List[str]:
        fragments = payload.get("vp_token")
        if isinstance(fragments, str):
            fragments = [fragments]
        if (
            not isinstance(fragments, list)
            or not fragments
            or not all(isinstance(f, str) for f in fragments)
        ):
            raise EncodingError("vp_token must hold at least one credential")
        return fragments

    async def verify_presentation_token(self, token: Any) -> VerificationResult:
        """Verify a presentation token, consuming its request session."""
        state = self.STATE_PENDING_SESSION
        try:
            _, payload = jwt_decode(token)
            session = await self._take_session(payload)

            nonce = payload.get("nonce")
            if not isinstance(nonce, str) or not compare_digest(nonce, session.nonce):
                raise NonceMismatch("Presentation nonce does not match request")
            if payload.get("aud") != did_jwk(self.verifier_key):
                raise AudienceMismatch("Presentation is not addressed to this verifier")
            iat = payload.get("iat")
            if not isinstance(iat, int) or isinstance(iat, bool):
                raise EncodingError("Presentation iat must be an integer timestamp")
            if abs(int(self._clock()) - iat) > self.config.clock_skew:
                raise TokenExpired("Presentation iat outside accepted window")
            state = self.STATE_NONCE_CHECKED

            presented = [
                self.engine.verify_disclosure(fragment, self.issuer_key)
                for fragment in self._fragments(payload)
            ]
            self._check_holder_binding(token, presented)

            evaluator = PresentationExchangeEvaluator.compile(session.definition)
            result = evaluator.verify(presented)
            if not result.verified:
                raise ConstraintsUnsatisfied(result.unmet)
            state = self.STATE_CLAIMS_MATCHED
        except OID4VXError as err:
            return self._reject(state, err)

        LOGGER.info("Accepted presentation for definition %s", session.definition.id)
        return VerificationResult(
            self.STATE_ACCEPTED,
            verified=True,
            claims=result.descriptor_id_to_claims,
            presented=presented,
        )
