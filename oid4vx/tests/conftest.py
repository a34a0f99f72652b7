"""Shared fixtures for the issuer and verifier core."""

import pytest

from oid4vx.config import Config
from oid4vx.holder import Holder
from oid4vx.keys import KeyMaterial
from oid4vx.proof import ProofJWTCodec
from oid4vx.stores import InMemoryNonceStore, InMemorySessionStore


class FakeClock:
    """Clock frozen until advanced."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return Config(endpoint="https://issuer.example.com")


@pytest.fixture
def keys():
    return KeyMaterial.generate()


@pytest.fixture
def nonce_store(clock):
    return InMemoryNonceStore(clock)


@pytest.fixture
def session_store(clock):
    return InMemorySessionStore(clock)


@pytest.fixture
def codec(config, clock):
    return ProofJWTCodec(clock_skew=config.clock_skew, clock=clock)


@pytest.fixture
def holder(keys, clock):
    return Holder(keys.holder, identity="did:example:holder", clock=clock)


@pytest.fixture
def definition():
    """Diploma definition demanding the degree claim."""
    return {
        "id": "diploma-check",
        "input_descriptors": [
            {
                "id": "diploma",
                "credential_type": "Diploma",
                "purpose": "Proof of degree",
                "fields": [{"path": ["$.degree"]}],
            }
        ],
    }
