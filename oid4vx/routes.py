"""HTTP adapter for the issuer and verifier.

Handlers only translate between HTTP and the core services; every protocol
decision happens in the services.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional, Union

from aiohttp import web

from .config import VCI_PREFIX, VP_PREFIX, Config
from .error import (
    AudienceMismatch,
    DefinitionInvalid,
    NonceReused,
    OID4VXError,
    SignatureInvalid,
    TokenExpired,
    UnknownOrExpiredSession,
)
from .holder import Holder
from .issuance import IssuanceService
from .jwt import jwt_decode
from .keys import KeyMaterial, public_key
from .models.presentation_definition import PresentationDefinition
from .presentation import PresentationRequestService, PresentationVerificationService
from .stores import InMemoryNonceStore, InMemorySessionStore, NonceStore, SessionStore

LOGGER = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (UnknownOrExpiredSession, 404),
    (DefinitionInvalid, 500),
    (SignatureInvalid, 401),
    (AudienceMismatch, 401),
    (NonceReused, 401),
    (TokenExpired, 401),
)


@dataclass
class Services:
    """Everything the handlers need, bound once per application."""

    config: Config
    keys: KeyMaterial
    definition: Union[dict, PresentationDefinition]
    issuance: IssuanceService
    requests: PresentationRequestService
    verification: PresentationVerificationService


SERVICES = web.AppKey("oid4vx_services", Services)


def error_response(err: OID4VXError) -> web.Response:
    """Map a core error to a response without echoing any token material."""
    status = next(
        (status for cls, status in STATUS_BY_ERROR if isinstance(err, cls)), 400
    )
    body = {"error": err.code, "error_description": str(err)}
    if hasattr(err, "unmet"):
        body["unmet"] = err.unmet
    return web.json_response(body, status=status)


async def _json_body(request: web.Request) -> dict:
    try:
        body = await request.json()
    except json.JSONDecodeError as err:
        raise web.HTTPBadRequest(reason="Request body must be JSON") from err
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(reason="Request body must be a JSON object")
    return body


async def generate_holder_proof(request: web.Request):
    """Mint a holder proof with the deployment's holder key.

    A wallet normally does this itself; the endpoint stands in for one.
    """
    services = request.app[SERVICES]
    body = await _json_body(request)
    iss = body.get("iss")
    if not iss:
        return web.json_response(
            {"error": "Holder identifier (iss) is required"}, status=400
        )

    holder = Holder(services.keys.holder, identity=iss)
    token = holder.issue_proof(services.config.credential_endpoint)
    _, decoded = jwt_decode(token)
    return web.json_response({"token": token, "decoded": decoded})


async def get_credential_offer(request: web.Request):
    """Publish the credential offer."""
    offer = request.app[SERVICES].issuance.credential_offer()
    return web.json_response(
        {"offer": offer.serialize(), "credential_offer": offer.to_uri()}
    )


async def credential_issuer_metadata(request: web.Request):
    """Credential issuer metadata endpoint."""
    return web.json_response(request.app[SERVICES].issuance.metadata())


def _bearer_token(request: web.Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def generate_credential(request: web.Request):
    """Issue a credential to the holder whose proof is in the Authorization header."""
    services = request.app[SERVICES]
    token = _bearer_token(request)
    if not token:
        return web.json_response(
            {"error": "invalid_proof", "error_description": "Bearer proof required"},
            status=401,
        )

    body = await _json_body(request)
    result = await services.issuance.request_credential(
        token, body.get("credentials") or {}, body.get("disclosureFrame") or {}
    )
    if not result.issued:
        return error_response(result.rejection)
    return web.json_response({"credential": result.credential.serialize()})


async def get_presentation_request(request: web.Request):
    """Create a presentation request for the deployment's definition."""
    services = request.app[SERVICES]
    try:
        signed = await services.requests.generate_signed_request_object(
            services.definition
        )
    except OID4VXError as err:
        LOGGER.error("Unable to create presentation request: %s", err.code)
        return error_response(err)
    return web.json_response(signed.serialize())


async def present_credentials(request: web.Request):
    """Verify a wallet's presentation."""
    services = request.app[SERVICES]
    body = await _json_body(request)
    token = body.get("vp_token") or body.get("presentation")
    if not isinstance(token, str):
        raise web.HTTPBadRequest(reason="vp_token is required")

    result = await services.verification.verify_presentation_token(token)
    if not result.verified:
        return error_response(result.rejection)
    return web.json_response(result.serialize())


def create_app(
    config: Config,
    definition: Union[dict, PresentationDefinition],
    keys: Optional[KeyMaterial] = None,
    nonce_store: Optional[NonceStore] = None,
    session_store: Optional[SessionStore] = None,
) -> web.Application:
    """Wire the services into an aiohttp application."""
    keys = keys or KeyMaterial.from_config(config)
    if nonce_store is None:
        nonce_store = InMemoryNonceStore()
    if session_store is None:
        session_store = InMemorySessionStore()

    services = Services(
        config=config,
        keys=keys,
        definition=definition,
        issuance=IssuanceService(config, keys.issuer, nonce_store),
        requests=PresentationRequestService(config, keys.verifier, session_store),
        verification=PresentationVerificationService(
            config, keys.verifier, public_key(keys.issuer), session_store
        ),
    )

    app = web.Application()
    app[SERVICES] = services
    app.add_routes(
        [
            web.post(f"/{VCI_PREFIX}/generateHolderProof", generate_holder_proof),
            web.get(f"/{VCI_PREFIX}/getCredentialOffer", get_credential_offer),
            web.post(f"/{VCI_PREFIX}/generateCredential", generate_credential),
            web.get(
                "/.well-known/openid-credential-issuer", credential_issuer_metadata
            ),
            web.get(f"/{VP_PREFIX}/getPresentationRequest", get_presentation_request),
            web.post(f"/{VP_PREFIX}/presentCredentials", present_credentials),
        ]
    )
    return app
