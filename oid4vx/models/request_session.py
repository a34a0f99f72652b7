"""Verifier-side correlation record for a presentation request."""

from acapy_agent.messaging.models.base import BaseModel, BaseModelSchema
from marshmallow import EXCLUDE, fields

from .presentation_definition import (
    PresentationDefinition,
    PresentationDefinitionSchema,
)


class RequestSession(BaseModel):
    """State, nonce and definition of one outstanding presentation request."""

    class Meta:
        """RequestSession metadata."""

        schema_class = "RequestSessionSchema"

    def __init__(
        self,
        *,
        state: str,
        nonce: str,
        definition: PresentationDefinition,
        created_at: int,
    ):
        """Initialize RequestSession."""
        super().__init__()
        self.state = state
        self.nonce = nonce
        self.definition = definition
        self.created_at = created_at


class RequestSessionSchema(BaseModelSchema):
    """RequestSession schema."""

    class Meta:
        """RequestSessionSchema metadata."""

        model_class = RequestSession
        unknown = EXCLUDE

    state = fields.Str(required=True)
    nonce = fields.Str(required=True)
    definition = fields.Nested(PresentationDefinitionSchema, required=True)
    created_at = fields.Int(required=True)
