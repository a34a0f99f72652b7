import pytest
from acapy_agent.config.settings import Settings

from oid4vx.config import Config
from oid4vx.error import ConfigError

ENV_VARS = (
    "OID4VX_ENDPOINT",
    "OID4VX_CLOCK_SKEW",
    "OID4VX_SESSION_TTL",
    "OID4VX_REQUEST_TTL",
    "OID4VX_CREDENTIAL_TYPE",
    "OID4VX_SD_ALG",
    "OID4VX_ISSUER_JWK",
    "OID4VX_VERIFIER_JWK",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


def plugin_settings(**values):
    return Settings({"plugin_config": {"oid4vx": values}})


def test_from_plugin_settings():
    config = Config.from_settings(
        plugin_settings(endpoint="https://issuer.example.com/", clock_skew="60")
    )

    assert config.endpoint == "https://issuer.example.com"
    assert config.clock_skew == 60
    assert config.session_ttl == 600
    assert config.request_ttl == 120
    assert config.sd_alg == "sha-256"
    assert config.credential_endpoint == (
        "https://issuer.example.com/api/vci/generateCredential"
    )
    assert config.response_uri == "https://issuer.example.com/api/vp/presentCredentials"


def test_environment_fallback(monkeypatch):
    monkeypatch.setenv("OID4VX_ENDPOINT", "https://env.example.com")
    monkeypatch.setenv("OID4VX_SESSION_TTL", "30")
    monkeypatch.setenv("OID4VX_CREDENTIAL_TYPE", "Transcript")

    config = Config.from_settings(Settings())
    assert config.endpoint == "https://env.example.com"
    assert config.session_ttl == 30
    assert config.credential_type == "Transcript"


def test_endpoint_expansion(monkeypatch):
    monkeypatch.setenv("PUBLIC_HOST", "verifier.example.com")
    monkeypatch.delenv("PORT", raising=False)

    config = Config.from_settings(
        plugin_settings(endpoint="https://${PUBLIC_HOST}:${PORT:-8443}")
    )
    assert config.endpoint == "https://verifier.example.com:8443"


def test_missing_endpoint():
    with pytest.raises(ConfigError) as excinfo:
        Config.from_settings(Settings())
    assert "OID4VX_ENDPOINT" in str(excinfo.value)


@pytest.mark.parametrize("value", ["soon", "0", "-5"])
def test_invalid_ttl(value):
    with pytest.raises(ConfigError):
        Config.from_settings(
            plugin_settings(endpoint="https://issuer.example.com", session_ttl=value)
        )


@pytest.mark.parametrize("value", [0, "0", True])
def test_explicit_plugin_value_not_overridden_by_environment(monkeypatch, value):
    monkeypatch.setenv("OID4VX_CLOCK_SKEW", "60")

    with pytest.raises(ConfigError):
        Config.from_settings(
            plugin_settings(endpoint="https://issuer.example.com", clock_skew=value)
        )


def test_environment_zero_rejected(monkeypatch):
    monkeypatch.setenv("OID4VX_ENDPOINT", "https://issuer.example.com")
    monkeypatch.setenv("OID4VX_REQUEST_TTL", "0")

    with pytest.raises(ConfigError):
        Config.from_settings(Settings())
