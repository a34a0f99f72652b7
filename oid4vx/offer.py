"""Credential offers and issuer metadata."""

import json
from dataclasses import dataclass
from urllib.parse import quote

from .config import Config

OFFER_SCHEME = "openid-credential-offer://"


@dataclass(frozen=True)
class CredentialOffer:
    """Pointer a holder uses to start issuance.

    Rendering the offer as a QR code is left to the caller.
    """

    issuer: str
    credential_type: str
    offer_url: str

    @classmethod
    def from_config(cls, config: Config) -> "CredentialOffer":
        """Offer for the configured credential type."""
        return cls(
            issuer=config.endpoint,
            credential_type=config.credential_type,
            offer_url=config.credential_endpoint,
        )

    def serialize(self) -> dict:
        """JSON form of the offer."""
        return {
            "issuer": self.issuer,
            "credentialType": self.credential_type,
            "offerUrl": self.offer_url,
        }

    def to_openid_offer(self) -> dict:
        """OpenID4VCI 1.0 § 4.1.1 credential offer object."""
        return {
            "credential_issuer": self.issuer,
            "credential_configuration_ids": [self.credential_type],
            "grants": {"authorization_code": {}},
        }

    def to_uri(self) -> str:
        """Offer by value, suitable for a QR code."""
        offer = quote(json.dumps(self.to_openid_offer()))
        return f"{OFFER_SCHEME}?credential_offer={offer}"


def issuer_metadata(config: Config, sd_alg: str = None) -> dict:
    """Credential issuer metadata.

    OpenID4VCI 1.0 § 11.2: Credential Issuer Metadata
    """
    return {
        "credential_issuer": config.endpoint,
        "credential_endpoint": config.credential_endpoint,
        "credential_configurations_supported": {
            config.credential_type: {
                "format": "vc+sd-jwt",
                "vct": config.credential_type,
                "cryptographic_binding_methods_supported": ["jwk"],
                "credential_signing_alg_values_supported": ["ES256", "EdDSA"],
                "proof_types_supported": {
                    "jwt": {"proof_signing_alg_values_supported": ["ES256", "EdDSA"]}
                },
                "sd_alg": sd_alg or config.sd_alg,
            }
        },
    }
