"""Selective-disclosure credentials."""

from .disclosure import (
    Disclosure,
    DisclosureEngine,
    DisclosureVerifyResult,
    IssuedCredential,
)

__all__ = [
    "Disclosure",
    "DisclosureEngine",
    "DisclosureVerifyResult",
    "IssuedCredential",
]
