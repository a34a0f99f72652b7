"""Fixtures for selective disclosure tests."""

import pytest
from aries_askar import Key, KeyAlg

from sd_credential.disclosure import DisclosureEngine


@pytest.fixture
def issuer_key():
    return Key.generate(KeyAlg.P256)


@pytest.fixture
def engine():
    return DisclosureEngine()
