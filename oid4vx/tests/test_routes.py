"""End-to-end exchange through the aiohttp adapter."""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from oid4vx.holder import Holder
from oid4vx.routes import create_app
from sd_credential import DisclosureEngine

CREDENTIAL_BODY = {
    "credentials": {"name": "Ada", "degree": "CS"},
    "disclosureFrame": {"name": False, "degree": True},
}


@pytest.fixture
def app(config, keys, definition):
    return create_app(config, definition, keys)


async def issue(client, iss="did:example:holder"):
    resp = await client.post("/api/vci/generateHolderProof", json={"iss": iss})
    assert resp.status == 200
    proof = (await resp.json())["token"]

    resp = await client.post(
        "/api/vci/generateCredential",
        json=CREDENTIAL_BODY,
        headers={"Authorization": f"Bearer {proof}"},
    )
    return proof, resp


async def present(client, keys, credential, reveal):
    resp = await client.get("/api/vp/getPresentationRequest")
    assert resp.status == 200
    signed = await resp.json()

    holder = Holder(keys.holder)
    request = holder.read_request_object(signed["signedRequestObject"])
    assert request["state"] == signed["state"]
    token = holder.present(request, [DisclosureEngine().disclose(credential, reveal)])
    return token, await client.post("/api/vp/presentCredentials", json={"vp_token": token})


@pytest.mark.asyncio
async def test_issue_and_present(app, keys, config):
    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/api/vci/getCredentialOffer")
        assert resp.status == 200
        offer = await resp.json()
        assert offer["offer"]["offerUrl"] == config.credential_endpoint
        assert offer["credential_offer"].startswith("openid-credential-offer://")

        resp = await client.get("/.well-known/openid-credential-issuer")
        assert (await resp.json())["credential_issuer"] == config.endpoint

        proof, resp = await issue(client)
        assert resp.status == 200
        credential = (await resp.json())["credential"]
        assert credential.endswith("~")

        token, resp = await present(client, keys, credential, ["degree"])
        assert resp.status == 200
        body = await resp.json()
        assert body == {
            "verified": True,
            "claims": {"diploma": {"name": "Ada", "degree": "CS"}},
        }

        resp = await client.post("/api/vp/presentCredentials", json={"vp_token": token})
        assert resp.status == 404
        body = await resp.json()
        assert body["error"] == "unknown_or_expired_session"
        assert token not in body["error_description"]


@pytest.mark.asyncio
async def test_replayed_proof(app):
    async with TestClient(TestServer(app)) as client:
        proof, resp = await issue(client)
        assert resp.status == 200

        resp = await client.post(
            "/api/vci/generateCredential",
            json=CREDENTIAL_BODY,
            headers={"Authorization": f"Bearer {proof}"},
        )
        assert resp.status == 401
        assert (await resp.json())["error"] == "nonce_reused"


@pytest.mark.asyncio
async def test_withheld_degree(app, keys):
    async with TestClient(TestServer(app)) as client:
        _, resp = await issue(client)
        credential = (await resp.json())["credential"]

        _, resp = await present(client, keys, credential, [])
        assert resp.status == 400
        body = await resp.json()
        assert body["error"] == "constraints_unsatisfied"
        assert body["unmet"] == ["degree"]


@pytest.mark.asyncio
async def test_bad_requests(app):
    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/api/vci/generateCredential", json=CREDENTIAL_BODY)
        assert resp.status == 401

        resp = await client.post("/api/vci/generateHolderProof", json={})
        assert resp.status == 400

        resp = await client.post("/api/vp/presentCredentials", data="{not json")
        assert resp.status == 400

        resp = await client.post("/api/vp/presentCredentials", json={})
        assert resp.status == 400

        resp = await client.post(
            "/api/vp/presentCredentials", json={"vp_token": "not-a-jwt"}
        )
        assert resp.status == 400
        assert (await resp.json())["error"] == "encoding_error"


@pytest.mark.asyncio
async def test_invalid_definition(config, keys):
    app = create_app(config, {"id": "empty", "input_descriptors": []}, keys)
    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/api/vp/getPresentationRequest")
        assert resp.status == 500
        assert (await resp.json())["error"] == "definition_invalid"
