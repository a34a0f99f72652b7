"""Retrieve configuration values."""

import re
from dataclasses import dataclass
from os import getenv
from typing import Optional

from acapy_agent.config.base import BaseSettings
from acapy_agent.config.settings import Settings

from .error import ConfigError

DEFAULT_CLOCK_SKEW = 300
DEFAULT_SESSION_TTL = 600
DEFAULT_REQUEST_TTL = 120
DEFAULT_SD_ALG = "sha-256"
VCI_PREFIX = "api/vci"
VP_PREFIX = "api/vp"


def expand_vars(text: str) -> str:
    """Expand ${VAR} and ${VAR:-default} references from the environment."""

    def replacer(match):
        var_expr = match.group(1)
        if ":-" in var_expr:
            var_name, default_value = var_expr.split(":-", 1)
            return getenv(var_name.strip(), default_value.strip())
        else:
            return getenv(var_expr.strip(), match.group(0))

    return re.sub(r"\$\{([^}]+)\}", replacer, text)


@dataclass
class Config:
    """Configuration for the issuer and verifier core."""

    endpoint: str
    clock_skew: int = DEFAULT_CLOCK_SKEW
    session_ttl: int = DEFAULT_SESSION_TTL
    request_ttl: int = DEFAULT_REQUEST_TTL
    credential_type: str = "Diploma"
    sd_alg: str = DEFAULT_SD_ALG
    issuer_jwk: Optional[str] = None
    verifier_jwk: Optional[str] = None

    @property
    def credential_endpoint(self) -> str:
        """Audience a holder proof must be bound to."""
        return f"{self.endpoint}/{VCI_PREFIX}/generateCredential"

    @property
    def response_uri(self) -> str:
        """Where a wallet posts its presentation."""
        return f"{self.endpoint}/{VP_PREFIX}/presentCredentials"

    @classmethod
    def from_settings(cls, settings: Optional[BaseSettings] = None) -> "Config":
        """Retrieve configuration from settings, falling back to the environment."""
        if settings is None:
            settings = Settings()
        assert isinstance(settings, Settings)
        plugin_settings = settings.for_plugin("oid4vx")

        endpoint = plugin_settings.get("endpoint") or getenv("OID4VX_ENDPOINT")
        if not endpoint:
            raise ConfigError("endpoint", "OID4VX_ENDPOINT")
        endpoint = expand_vars(endpoint).rstrip("/")

        def _int(var: str, env: str, default: int) -> int:
            value = plugin_settings.get(var)
            if value is None:
                value = getenv(env)
            if value is None:
                return default
            if isinstance(value, bool):
                raise ConfigError(var, env)
            try:
                parsed = int(value)
            except (TypeError, ValueError) as err:
                raise ConfigError(var, env) from err
            if parsed <= 0:
                raise ConfigError(var, env)
            return parsed

        return cls(
            endpoint=endpoint,
            clock_skew=_int("clock_skew", "OID4VX_CLOCK_SKEW", DEFAULT_CLOCK_SKEW),
            session_ttl=_int("session_ttl", "OID4VX_SESSION_TTL", DEFAULT_SESSION_TTL),
            request_ttl=_int("request_ttl", "OID4VX_REQUEST_TTL", DEFAULT_REQUEST_TTL),
            credential_type=plugin_settings.get("credential_type")
            or getenv("OID4VX_CREDENTIAL_TYPE", "Diploma"),
            sd_alg=plugin_settings.get("sd_alg")
            or getenv("OID4VX_SD_ALG", DEFAULT_SD_ALG),
            issuer_jwk=plugin_settings.get("issuer_jwk") or getenv("OID4VX_ISSUER_JWK"),
            verifier_jwk=plugin_settings.get("verifier_jwk")
            or getenv("OID4VX_VERIFIER_JWK"),
        )
