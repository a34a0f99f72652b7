import pytest
from aries_askar import Key, KeyAlg

from oid4vx.error import EncodingError, SignatureInvalid
from oid4vx.jwt import jwt_decode, jwt_sign, jwt_verify
from oid4vx.keys import did_jwk, key_from_did_jwk, key_from_jwk, public_jwk, public_key


@pytest.mark.parametrize("alg", [KeyAlg.P256, KeyAlg.ED25519])
def test_sign_and_verify(alg):
    key = Key.generate(alg)
    token = jwt_sign({"kid": "k1"}, {"sub": "ada"}, key)

    result = jwt_verify(token, public_key(key))
    assert result.verified
    assert result.payload == {"sub": "ada"}
    assert result.headers["typ"] == "JWT"
    assert result.headers["alg"] == ("ES256" if alg == KeyAlg.P256 else "EdDSA")


def test_tampered_payload():
    key = Key.generate(KeyAlg.P256)
    token = jwt_sign({}, {"sub": "ada"}, key)
    other = jwt_sign({}, {"sub": "bob"}, key)
    forged = ".".join([token.split(".")[0], other.split(".")[1], token.split(".")[2]])

    with pytest.raises(SignatureInvalid):
        jwt_verify(forged, key)


def test_wrong_key():
    token = jwt_sign({}, {"sub": "ada"}, Key.generate(KeyAlg.P256))

    with pytest.raises(SignatureInvalid):
        jwt_verify(token, Key.generate(KeyAlg.P256))
    with pytest.raises(SignatureInvalid):
        jwt_verify(token, Key.generate(KeyAlg.ED25519))


@pytest.mark.parametrize("token", ["", "abc", "a.b", "!!.??.sig", 42])
def test_malformed(token):
    with pytest.raises(EncodingError):
        jwt_decode(token)


def test_did_jwk_round_trip():
    key = Key.generate(KeyAlg.ED25519)
    did = did_jwk(key)

    assert did.startswith("did:jwk:")
    assert public_jwk(key_from_did_jwk(f"{did}#0")) == public_jwk(key)


def test_key_from_jwk_rejects_garbage():
    with pytest.raises(EncodingError):
        key_from_jwk("not json")
    with pytest.raises(EncodingError):
        key_from_jwk({"kty": "EC", "crv": "P-256"})
    with pytest.raises(EncodingError):
        key_from_did_jwk("did:key:z6Mk")
