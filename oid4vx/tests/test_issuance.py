import json
from urllib.parse import parse_qs, urlparse

import pytest
from aries_askar import Key, KeyAlg

from oid4vx.holder import Holder
from oid4vx.issuance import IssuanceService
from oid4vx.keys import public_jwk, public_key
from sd_credential import DisclosureEngine

CLAIMS = {"name": "Ada", "degree": "CS"}
FRAME = {"name": False, "degree": True}


@pytest.fixture
def service(config, keys, nonce_store, codec, clock):
    return IssuanceService(
        config,
        keys.issuer,
        nonce_store,
        codec=codec,
        engine=DisclosureEngine(clock=clock),
    )


@pytest.mark.asyncio
async def test_issue_credential(service, holder, keys, config):
    proof = holder.issue_proof(config.credential_endpoint)

    result = await service.request_credential(proof, CLAIMS, FRAME)
    assert result.issued
    assert result.state == IssuanceService.STATE_CREDENTIAL_ISSUED
    assert result.rejection is None
    assert result.proof.iss == "did:example:holder"

    payload = result.credential.payload
    assert payload["iss"] == config.endpoint
    assert payload["vct"] == "Diploma"
    assert payload["cnf"] == {"jwk": public_jwk(keys.holder)}
    assert payload["name"] == "Ada"
    assert "degree" not in payload

    verified = service.engine.verify_disclosure(
        result.credential.serialize(), public_key(keys.issuer)
    )
    assert verified.claims == CLAIMS


@pytest.mark.asyncio
async def test_replayed_proof_rejected(service, holder, config):
    proof = holder.issue_proof(config.credential_endpoint)
    await service.request_credential(proof, CLAIMS, FRAME)

    result = await service.request_credential(proof, CLAIMS, FRAME)
    assert not result.issued
    assert result.state == IssuanceService.STATE_REJECTED
    assert result.reason == "nonce_reused"


@pytest.mark.asyncio
async def test_proof_for_other_endpoint(service, holder):
    proof = holder.issue_proof("https://other.example.com/api/vci/generateCredential")

    result = await service.request_credential(proof, CLAIMS, FRAME)
    assert result.reason == "audience_mismatch"
    assert result.credential is None


@pytest.mark.asyncio
async def test_stale_proof(service, holder, config, clock):
    proof = holder.issue_proof(config.credential_endpoint)
    clock.advance(config.clock_skew + 1)

    result = await service.request_credential(proof, CLAIMS, FRAME)
    assert result.reason == "token_expired"


@pytest.mark.asyncio
async def test_garbage_proof(service):
    result = await service.request_credential("not-a-jwt", CLAIMS, FRAME)
    assert result.reason == "encoding_error"


@pytest.mark.asyncio
async def test_frame_mismatch_rejected_after_proof(service, holder, config, nonce_store):
    proof = holder.issue_proof(config.credential_endpoint)

    result = await service.request_credential(proof, CLAIMS, {"name": False})
    assert result.reason == "frame_mismatch"
    assert result.credential is None
    assert len(nonce_store) == 1


@pytest.mark.asyncio
async def test_known_holder_key(config, keys, nonce_store, codec, holder, clock):
    service = IssuanceService(
        config, keys.issuer, nonce_store, holder_key=public_key(keys.holder), codec=codec
    )
    result = await service.request_credential(
        holder.issue_proof(config.credential_endpoint), CLAIMS, FRAME
    )
    assert result.issued
    assert result.credential.payload["cnf"] == {"jwk": public_jwk(keys.holder)}

    intruder = Holder(Key.generate(KeyAlg.P256), clock=clock)
    rejected = await service.request_credential(
        intruder.issue_proof(config.credential_endpoint), CLAIMS, FRAME
    )
    assert rejected.reason == "signature_invalid"


def test_offer_and_metadata(service, config):
    offer = service.credential_offer()
    assert offer.serialize() == {
        "issuer": config.endpoint,
        "credentialType": "Diploma",
        "offerUrl": config.credential_endpoint,
    }

    uri = urlparse(offer.to_uri())
    assert uri.scheme == "openid-credential-offer"
    body = json.loads(parse_qs(uri.query)["credential_offer"][0])
    assert body["credential_issuer"] == config.endpoint
    assert body["credential_configuration_ids"] == ["Diploma"]

    metadata = service.metadata()
    assert metadata["credential_endpoint"] == config.credential_endpoint
    assert metadata["credential_configurations_supported"]["Diploma"]["format"] == (
        "vc+sd-jwt"
    )
