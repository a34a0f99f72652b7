"""Error taxonomy for the OID4VCI/OID4VP core.

Every failure is terminal for the request that raised it; nothing in the core
retries a rejected proof or presentation.
"""

from typing import Sequence

from acapy_agent.core.error import BaseError


class OID4VXError(BaseError):
    """Base class for protocol errors."""

    code = "oid4vx_error"


class ConfigError(OID4VXError, ValueError):
    """Raised when a required setting is missing."""

    code = "config_error"

    def __init__(self, var: str, env: str):
        """Initialize a ConfigError."""
        super().__init__(
            f"Invalid {var} specified; use either "
            f"oid4vx.{var} plugin config value or environment variable {env}"
        )


class EncodingError(OID4VXError):
    """A token or payload could not be encoded or decoded."""

    code = "encoding_error"


class SignatureInvalid(OID4VXError):
    """A signature did not verify against the expected key."""

    code = "signature_invalid"


class AudienceMismatch(OID4VXError):
    """Token audience does not match the expected audience."""

    code = "audience_mismatch"


class NonceReused(OID4VXError):
    """Proof nonce was already consumed."""

    code = "nonce_reused"


class TokenExpired(OID4VXError):
    """Token iat lies outside the accepted clock-skew window."""

    code = "token_expired"


class FrameMismatch(OID4VXError):
    """Disclosure frame shape does not match the claim set."""

    code = "frame_mismatch"


class DigestMismatch(OID4VXError):
    """A disclosure's digest is not committed in the signed credential."""

    code = "digest_mismatch"


class UnknownClaimPath(OID4VXError):
    """A claim path does not name any claim of the credential."""

    code = "unknown_claim_path"


class UnknownOrExpiredSession(OID4VXError):
    """No live request session exists for the presented state."""

    code = "unknown_or_expired_session"


class NonceMismatch(OID4VXError):
    """Presentation nonce does not match the request session nonce."""

    code = "nonce_mismatch"


class DefinitionInvalid(OID4VXError):
    """Presentation definition cannot be used for a request."""

    code = "definition_invalid"


class ConstraintsUnsatisfied(OID4VXError):
    """Revealed claims do not satisfy the presentation definition."""

    code = "constraints_unsatisfied"

    def __init__(self, unmet: Sequence[str]):
        """Initialize with the list of unmet claim paths."""
        self.unmet = list(unmet)
        super().__init__(f"ConstraintsUnsatisfied: [{', '.join(self.unmet)}]")
