"""Selectively-disclosable credentials.

A credential commits to every disclosable claim through a salted digest of a
Disclosure ``[salt, name, value]``. The issuer signs the digests and the
always-visible claims only, so a holder may reveal any subset of Disclosures
later without invalidating the signature, and cannot alter or invent a claim
without producing a digest the issuer never signed.
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from secrets import token_urlsafe
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from acapy_agent.wallet.util import b64_to_bytes, bytes_to_b64
from aries_askar import Key

from oid4vx.error import (
    DigestMismatch,
    EncodingError,
    FrameMismatch,
    UnknownClaimPath,
)
from oid4vx.jwt import jwt_decode, jwt_sign, jwt_verify
from oid4vx.keys import did_jwk

LOGGER = logging.getLogger(__name__)

SD_JWT_TYP = "vc+sd-jwt"
SEPARATOR = "~"
SD_KEY = "_sd"
SD_ALG_KEY = "_sd_alg"
DEFAULT_SD_ALG = "sha-256"
SALT_BYTES = 16

SD_ALGS: Dict[str, Callable] = {
    "sha-256": hashlib.sha256,
    "sha-384": hashlib.sha384,
    "sha-512": hashlib.sha512,
}

# Claims the credential envelope owns; never part of the claim set.
RESERVED_CLAIMS = {"iss", "iat", "nbf", "exp", "vct", "cnf", SD_KEY, SD_ALG_KEY}
RESERVED_NAMES = {SD_KEY, "..."}

ClaimPath = Tuple[str, ...]


def to_claim_path(path: Union[str, Iterable[str]]) -> ClaimPath:
    """Normalize a dotted string or sequence of names to a claim path."""
    if isinstance(path, str):
        if path.startswith("$."):
            path = path[2:]
        return tuple(path.split("."))
    return tuple(path)


def _hasher(sd_alg: str) -> Callable:
    hasher = SD_ALGS.get(sd_alg)
    if hasher is None:
        raise EncodingError(f"Unsupported digest algorithm: {sd_alg}")
    return hasher


def digest_of(encoded: str, sd_alg: str = DEFAULT_SD_ALG) -> str:
    """Digest of an encoded disclosure."""
    digest = _hasher(sd_alg)(encoded.encode("utf-8")).digest()
    return bytes_to_b64(digest, urlsafe=True, pad=False)


@dataclass(frozen=True)
class Disclosure:
    """A salted claim whose digest is committed at issuance."""

    salt: str
    name: str
    value: Any
    encoded: str

    @classmethod
    def create(cls, name: str, value: Any) -> "Disclosure":
        """Create a disclosure with a fresh random salt."""
        salt = token_urlsafe(SALT_BYTES)
        raw = json.dumps([salt, name, value], ensure_ascii=False).encode("utf-8")
        return cls(salt, name, value, bytes_to_b64(raw, urlsafe=True, pad=False))

    @classmethod
    def decode(cls, encoded: str) -> "Disclosure":
        """Parse an encoded disclosure."""
        try:
            decoded = json.loads(b64_to_bytes(encoded, urlsafe=True))
        except ValueError as err:
            raise EncodingError("Malformed disclosure") from err
        if (
            not isinstance(decoded, list)
            or len(decoded) != 3
            or not isinstance(decoded[0], str)
            or not isinstance(decoded[1], str)
        ):
            raise EncodingError("Disclosure must be [salt, name, value]")
        salt, name, value = decoded
        if name in RESERVED_NAMES:
            raise EncodingError(f"Disclosure uses reserved name {name}")
        return cls(salt, name, value, encoded)

    def digest(self, sd_alg: str = DEFAULT_SD_ALG) -> str:
        """Digest committed in the signed credential."""
        return digest_of(self.encoded, sd_alg)


@dataclass
class IssuedCredential:
    """Issuer-signed body plus every disclosure minted for it."""

    jwt: str
    disclosures: List[Disclosure] = field(default_factory=list)

    @classmethod
    def parse(cls, compact: str) -> "IssuedCredential":
        """Parse ``<jwt>~<disclosure>~...~``."""
        if not isinstance(compact, str) or SEPARATOR not in compact:
            raise EncodingError("Invalid SD credential format")
        jwt, *encoded = compact.split(SEPARATOR)
        if encoded and encoded[-1]:
            raise EncodingError("Key binding JWTs are not supported")
        return cls(jwt, [Disclosure.decode(e) for e in encoded if e])

    def serialize(self) -> str:
        """Compact serialization."""
        return SEPARATOR.join([self.jwt, *(d.encoded for d in self.disclosures), ""])

    @property
    def payload(self) -> dict:
        """Signed body, not verified."""
        _, payload = jwt_decode(self.jwt)
        return payload

    @property
    def credential_type(self) -> Optional[str]:
        """The vct of the credential."""
        return self.payload.get("vct")

    @property
    def digests(self) -> List[str]:
        """Every digest committed in the signed body."""
        return _collect_digests(self.payload)


@dataclass
class DisclosureVerifyResult:
    """Claims recovered from a verified presentation fragment.

    ``claims`` holds the always-visible claims merged with the revealed ones;
    ``disclosed`` only the claims revealed through disclosures.
    """

    claims: Dict[str, Any]
    disclosed: Dict[str, Any]
    credential_type: Optional[str]
    issuer: Optional[str]
    holder_jwk: Optional[dict]
    payload: Mapping[str, Any]


def _collect_digests(obj: Any) -> List[str]:
    """Digests in the plaintext part of an object, at any depth."""
    found: List[str] = []
    if isinstance(obj, dict):
        digests = obj.get(SD_KEY, [])
        if not isinstance(digests, list) or not all(
            isinstance(d, str) for d in digests
        ):
            raise EncodingError("_sd must be a list of digests")
        found.extend(digests)
        for key, value in obj.items():
            if key != SD_KEY:
                found.extend(_collect_digests(value))
    return found


class DisclosureEngine:
    """Build, disclose and verify selectively-disclosable credentials."""

    def __init__(
        self,
        sd_alg: str = DEFAULT_SD_ALG,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the engine with the digest algorithm used for issuance."""
        _hasher(sd_alg)
        self.sd_alg = sd_alg
        self._clock = clock

    def _build(
        self,
        claims: Mapping[str, Any],
        frame: Any,
        path: ClaimPath,
        disclosures: List[Disclosure],
    ) -> dict:
        if not isinstance(frame, dict):
            raise FrameMismatch(f"Frame at '{'.'.join(path) or '$'}' must be an object")

        for name in claims:
            if name in RESERVED_NAMES or (not path and name in RESERVED_CLAIMS):
                raise EncodingError(f"Claim name '{name}' is reserved")

        frame_names = set(frame) - {SD_KEY}
        missing = sorted(frame_names - set(claims))
        extra = sorted(set(claims) - frame_names)
        if missing or extra:
            details = [f"absent from claims: {'.'.join(path + (n,))}" for n in missing]
            details += [f"absent from frame: {'.'.join(path + (n,))}" for n in extra]
            raise FrameMismatch("; ".join(details))

        obj = {}
        digests = []
        for name, value in claims.items():
            marker = frame[name]
            if isinstance(marker, bool):
                built, disclosable = value, marker
            elif isinstance(marker, dict):
                if not isinstance(value, dict):
                    raise FrameMismatch(
                        f"Frame expects an object at '{'.'.join(path + (name,))}'"
                    )
                disclosable = marker.get(SD_KEY, False)
                if not isinstance(disclosable, bool):
                    raise FrameMismatch("_sd marker must be a boolean")
                built = self._build(value, marker, path + (name,), disclosures)
            else:
                raise FrameMismatch(
                    f"Invalid frame marker at '{'.'.join(path + (name,))}'"
                )

            if disclosable:
                disclosure = Disclosure.create(name, built)
                disclosures.append(disclosure)
                digests.append(disclosure.digest(self.sd_alg))
            else:
                obj[name] = built

        if digests:
            obj[SD_KEY] = sorted(digests)
        return obj

    def build_credential(
        self,
        claims: Mapping[str, Any],
        frame: Mapping[str, Any],
        issuer_signing_key: Key,
        *,
        issuer: Optional[str] = None,
        credential_type: Optional[str] = None,
        holder_jwk: Optional[dict] = None,
    ) -> IssuedCredential:
        """Mint a credential from raw claims and a disclosure frame."""
        if not isinstance(claims, Mapping):
            raise EncodingError("Claims must be an object")
        if isinstance(frame, Mapping) and SD_KEY in frame:
            raise FrameMismatch("The credential root cannot be disclosable")

        disclosures: List[Disclosure] = []
        body = self._build(dict(claims), frame, (), disclosures)

        payload = {
            "iss": issuer or did_jwk(issuer_signing_key),
            "iat": int(self._clock()),
            SD_ALG_KEY: self.sd_alg,
            **body,
        }
        if credential_type:
            payload["vct"] = credential_type
        if holder_jwk:
            payload["cnf"] = {"jwk": holder_jwk}

        headers = {"typ": SD_JWT_TYP, "kid": f"{did_jwk(issuer_signing_key)}#0"}
        jwt = jwt_sign(headers, payload, issuer_signing_key)
        LOGGER.info(
            "Built %s credential with %d disclosures",
            credential_type or "untyped",
            len(disclosures),
        )
        return IssuedCredential(jwt, disclosures)

    def disclose(
        self,
        credential: Union[IssuedCredential, str],
        reveal_set: Iterable[Union[str, Iterable[str]]],
    ) -> str:
        """Select the disclosures needed to reveal the given claim paths.

        Disclosable ancestors of a revealed claim are revealed with it; paths
        naming always-visible claims need no disclosure.
        """
        if isinstance(credential, str):
            credential = IssuedCredential.parse(credential)
        payload = credential.payload
        sd_alg = payload.get(SD_ALG_KEY, DEFAULT_SD_ALG)
        by_digest = {d.digest(sd_alg): d for d in credential.disclosures}
        root = {k: v for k, v in payload.items() if k not in RESERVED_CLAIMS - {SD_KEY}}

        selected = set()
        for raw_path in reveal_set:
            path = to_claim_path(raw_path)
            current: Any = root
            for depth, name in enumerate(path):
                if not isinstance(current, dict):
                    raise UnknownClaimPath(f"No claim at '{'.'.join(path)}'")
                if name in current and name not in RESERVED_NAMES:
                    current = current[name]
                    continue
                match = None
                for digest in current.get(SD_KEY, []):
                    disclosure = by_digest.get(digest)
                    if disclosure is not None and disclosure.name == name:
                        match = disclosure
                        break
                if match is None:
                    raise UnknownClaimPath(f"No claim at '{'.'.join(path[: depth + 1])}'")
                selected.add(match.encoded)
                current = match.value

        revealed = [d for d in credential.disclosures if d.encoded in selected]
        return IssuedCredential(credential.jwt, revealed).serialize()

    def _unpack(
        self,
        obj: Mapping[str, Any],
        by_digest: Dict[str, Disclosure],
        used: set,
    ) -> Tuple[dict, dict]:
        claims: Dict[str, Any] = {}
        disclosed: Dict[str, Any] = {}
        for key, value in obj.items():
            if key == SD_KEY:
                continue
            if isinstance(value, dict):
                claims[key], nested = self._unpack(value, by_digest, used)
                if nested:
                    disclosed[key] = nested
            else:
                claims[key] = value

        for digest in obj.get(SD_KEY, []):
            disclosure = by_digest.get(digest)
            if disclosure is None:
                continue
            if digest in used:
                raise DigestMismatch("Digest committed more than once")
            used.add(digest)
            if disclosure.name in claims:
                raise DigestMismatch(
                    f"Disclosed claim '{disclosure.name}' collides with a visible claim"
                )
            value = disclosure.value
            if isinstance(value, dict):
                value, _ = self._unpack(value, by_digest, used)
            claims[disclosure.name] = value
            disclosed[disclosure.name] = value
        return claims, disclosed

    def verify_disclosure(
        self, fragment: str, issuer_verification_key: Key
    ) -> DisclosureVerifyResult:
        """Verify the issuer signature and every revealed disclosure."""
        if not isinstance(fragment, str) or SEPARATOR not in fragment:
            raise EncodingError("Invalid SD credential format")
        jwt, *encoded = fragment.split(SEPARATOR)
        if encoded and encoded[-1]:
            raise EncodingError("Key binding JWTs are not supported")
        encoded = [e for e in encoded if e]

        result = jwt_verify(jwt, issuer_verification_key)
        payload = result.payload
        sd_alg = payload.get(SD_ALG_KEY, DEFAULT_SD_ALG)
        _hasher(sd_alg)

        committed = _collect_digests(payload)
        if len(committed) != len(set(committed)):
            raise DigestMismatch("Digest committed more than once")

        # Resolve disclosures level by level: a nested disclosure is only
        # committed once its parent disclosure has been accepted.
        known = set(committed)
        pending = {}
        for item in encoded:
            digest = digest_of(item, sd_alg)
            if digest in pending:
                raise DigestMismatch("Disclosure presented more than once")
            pending[digest] = item
        by_digest: Dict[str, Disclosure] = {}
        progress = True
        while pending and progress:
            progress = False
            for digest in [d for d in pending if d in known]:
                disclosure = Disclosure.decode(pending.pop(digest))
                by_digest[digest] = disclosure
                known.update(_collect_digests(disclosure.value))
                progress = True
        if pending:
            raise DigestMismatch("Disclosure digest not committed by issuer")

        root = {k: v for k, v in payload.items() if k not in RESERVED_CLAIMS - {SD_KEY}}
        used: set = set()
        claims, disclosed = self._unpack(root, by_digest, used)
        if used != set(by_digest):
            raise DigestMismatch("Disclosure is not reachable from the signed body")

        cnf = payload.get("cnf")
        return DisclosureVerifyResult(
            claims=claims,
            disclosed=disclosed,
            credential_type=payload.get("vct"),
            issuer=payload.get("iss"),
            holder_jwk=cnf.get("jwk") if isinstance(cnf, dict) else None,
            payload=payload,
        )
