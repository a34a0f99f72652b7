"""Credential issuance: proof verification followed by credential construction."""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from aries_askar import Key

from sd_credential.disclosure import DisclosureEngine, IssuedCredential

from .config import Config
from .error import OID4VXError
from .jwt import jwt_decode
from .keys import public_jwk
from .offer import CredentialOffer, issuer_metadata
from .proof import ProofJWTCodec, ProofPayload
from .stores import NonceStore

LOGGER = logging.getLogger(__name__)


@dataclass
class IssuanceResult:
    """Outcome of a credential request: a credential or a rejection, never both."""

    state: str
    credential: Optional[IssuedCredential] = None
    proof: Optional[ProofPayload] = None
    rejection: Optional[OID4VXError] = None

    @property
    def issued(self) -> bool:
        """Whether a credential was issued."""
        return self.credential is not None

    @property
    def reason(self) -> Optional[str]:
        """Rejection code, if rejected."""
        return self.rejection.code if self.rejection else None


class IssuanceService:
    """Issuer side of the authorization code flow.

    The service keeps no per-request state; the nonce store is the only thing
    shared between requests.
    """

    STATE_AWAITING_PROOF = "awaiting_proof"
    STATE_PROOF_VERIFIED = "proof_verified"
    STATE_CREDENTIAL_ISSUED = "credential_issued"
    STATE_REJECTED = "rejected"

    def __init__(
        self,
        config: Config,
        issuer_key: Key,
        nonce_store: NonceStore,
        *,
        holder_key: Optional[Key] = None,
        codec: Optional[ProofJWTCodec] = None,
        engine: Optional[DisclosureEngine] = None,
    ):
        """Initialize the service.

        Args:
            config: Issuer configuration
            issuer_key: Key signing issued credentials
            nonce_store: Shared replay guard for proof nonces
            holder_key: Known holder key; when absent the proof's own jwk is used
            codec: Proof codec, defaults to one using the configured clock skew
            engine: Disclosure engine, defaults to the configured digest algorithm
        """
        self.config = config
        self.issuer_key = issuer_key
        self.nonce_store = nonce_store
        self.holder_key = holder_key
        self.codec = codec or ProofJWTCodec(clock_skew=config.clock_skew)
        self.engine = engine or DisclosureEngine(sd_alg=config.sd_alg)

    def credential_offer(self) -> CredentialOffer:
        """Offer pointing at this issuer's credential endpoint."""
        return CredentialOffer.from_config(self.config)

    def metadata(self) -> dict:
        """Credential issuer metadata."""
        return issuer_metadata(self.config, self.engine.sd_alg)

    def _reject(self, state: str, err: OID4VXError) -> IssuanceResult:
        LOGGER.warning("Credential request rejected in %s: %s", state, err.code)
        return IssuanceResult(self.STATE_REJECTED, rejection=err)

    async def request_credential(
        self,
        proof_token: str,
        raw_claims: Mapping[str, Any],
        frame: Mapping[str, Any],
    ) -> IssuanceResult:
        """Verify the holder proof, then mint the credential."""
        state = self.STATE_AWAITING_PROOF
        try:
            proof = await self.codec.verify(
                proof_token,
                self.holder_key,
                self.config.credential_endpoint,
                self.nonce_store,
            )
        except OID4VXError as err:
            return self._reject(state, err)

        state = self.STATE_PROOF_VERIFIED
        LOGGER.info("Proof verified for %s", proof.iss)
        if self.holder_key is not None:
            holder_jwk = public_jwk(self.holder_key)
        else:
            headers, _ = jwt_decode(proof_token)
            holder_jwk = headers["jwk"]

        try:
            credential = self.engine.build_credential(
                raw_claims,
                frame,
                self.issuer_key,
                issuer=self.config.endpoint,
                credential_type=self.config.credential_type,
                holder_jwk=holder_jwk,
            )
        except OID4VXError as err:
            return self._reject(state, err)

        LOGGER.info("Issued %s credential to %s", self.config.credential_type, proof.iss)
        return IssuanceResult(
            self.STATE_CREDENTIAL_ISSUED, credential=credential, proof=proof
        )
