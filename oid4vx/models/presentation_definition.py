"""Presentation definition models (DIF Presentation Exchange subset).

Descriptors may list their fields directly or, as DIF does, under
``constraints.fields``. Keys outside the supported subset are rejected rather
than ignored, so an unsupported constraint never loosens a request.
"""

from typing import List, Optional, Sequence

from acapy_agent.messaging.models.base import BaseModel, BaseModelSchema
from marshmallow import RAISE, fields, validate


class ConstraintField(BaseModel):
    """A claim the verifier demands be disclosed."""

    class Meta:
        """ConstraintField metadata."""

        schema_class = "ConstraintFieldSchema"

    def __init__(
        self,
        *,
        path: Sequence[str],
        filter_: Optional[dict] = None,
        optional: bool = False,
        id: Optional[str] = None,
        name: Optional[str] = None,
        purpose: Optional[str] = None,
        intent_to_retain: Optional[bool] = None,
    ):
        """Initialize ConstraintField.

        Args:
            path: Alternative claim paths; the first one that resolves wins.
            filter_: JSON schema the resolved value must satisfy.
            optional: Whether an absent claim still satisfies the descriptor.
            id: Optional field identifier.
            name: Human readable name.
            purpose: Why the claim is requested.
            intent_to_retain: Whether the verifier keeps the value.
        """
        super().__init__()
        self.path = list(path)
        self.filter_ = filter_
        self.optional = optional
        self.id = id
        self.name = name
        self.purpose = purpose
        self.intent_to_retain = intent_to_retain


class ConstraintFieldSchema(BaseModelSchema):
    """ConstraintField schema."""

    class Meta:
        """ConstraintFieldSchema metadata."""

        model_class = ConstraintField
        unknown = RAISE
        skip_values = [None]

    id = fields.Str(required=False, metadata={"description": "Field identifier"})
    path = fields.List(
        fields.Str(),
        required=True,
        validate=validate.Length(min=1),
        metadata={"description": "Claim paths", "example": ["$.degree"]},
    )
    filter_ = fields.Dict(
        required=False,
        data_key="filter",
        metadata={"description": "JSON schema the claim value must satisfy"},
    )
    optional = fields.Bool(required=False, load_default=False)
    name = fields.Str(required=False)
    purpose = fields.Str(required=False)
    intent_to_retain = fields.Bool(required=False)


class Constraints(BaseModel):
    """DIF constraints block of an input descriptor."""

    class Meta:
        """Constraints metadata."""

        schema_class = "ConstraintsSchema"

    def __init__(
        self,
        *,
        field_constraints: Optional[Sequence[ConstraintField]] = None,
        limit_disclosure: Optional[str] = None,
    ):
        """Initialize Constraints."""
        super().__init__()
        self.field_constraints: List[ConstraintField] = list(field_constraints or [])
        self.limit_disclosure = limit_disclosure


class ConstraintsSchema(BaseModelSchema):
    """Constraints schema."""

    class Meta:
        """ConstraintsSchema metadata."""

        model_class = Constraints
        unknown = RAISE
        skip_values = [None]

    field_constraints = fields.List(
        fields.Nested(ConstraintFieldSchema),
        required=False,
        data_key="fields",
    )
    limit_disclosure = fields.Str(
        required=False, validate=validate.OneOf(["required", "preferred"])
    )


class InputDescriptor(BaseModel):
    """Demanded claims, optionally restricted to one credential type."""

    class Meta:
        """InputDescriptor metadata."""

        schema_class = "InputDescriptorSchema"

    def __init__(
        self,
        *,
        id: str,
        credential_type: Optional[str] = None,
        name: Optional[str] = None,
        purpose: Optional[str] = None,
        group: Optional[Sequence[str]] = None,
        format_: Optional[dict] = None,
        field_constraints: Optional[Sequence[ConstraintField]] = None,
        constraints: Optional[Constraints] = None,
    ):
        """Initialize InputDescriptor."""
        super().__init__()
        self.id = id
        self.credential_type = credential_type
        self.name = name
        self.purpose = purpose
        self.group = list(group) if group is not None else None
        self.format_ = format_
        self.field_constraints: List[ConstraintField] = list(field_constraints or [])
        self.constraints = constraints

    @property
    def all_fields(self) -> List[ConstraintField]:
        """Fields listed directly and under constraints."""
        nested = self.constraints.field_constraints if self.constraints else []
        return [*self.field_constraints, *nested]


class InputDescriptorSchema(BaseModelSchema):
    """InputDescriptor schema."""

    class Meta:
        """InputDescriptorSchema metadata."""

        model_class = InputDescriptor
        unknown = RAISE
        skip_values = [None]

    id = fields.Str(required=True, metadata={"description": "Descriptor identifier"})
    credential_type = fields.Str(
        required=False,
        metadata={"description": "Credential type (vct)", "example": "Diploma"},
    )
    name = fields.Str(required=False)
    purpose = fields.Str(required=False)
    group = fields.List(fields.Str(), required=False)
    format_ = fields.Dict(required=False, data_key="format")
    field_constraints = fields.List(
        fields.Nested(ConstraintFieldSchema),
        required=False,
        data_key="fields",
    )
    constraints = fields.Nested(ConstraintsSchema, required=False)


class PresentationDefinition(BaseModel):
    """Verifier-declared presentation constraints."""

    class Meta:
        """PresentationDefinition metadata."""

        schema_class = "PresentationDefinitionSchema"

    def __init__(
        self,
        *,
        id: str,
        input_descriptors: Optional[Sequence[InputDescriptor]] = None,
        name: Optional[str] = None,
        purpose: Optional[str] = None,
        format_: Optional[dict] = None,
    ):
        """Initialize PresentationDefinition."""
        super().__init__()
        self.id = id
        self.input_descriptors: List[InputDescriptor] = list(input_descriptors or [])
        self.name = name
        self.purpose = purpose
        self.format_ = format_


class PresentationDefinitionSchema(BaseModelSchema):
    """PresentationDefinition schema."""

    class Meta:
        """PresentationDefinitionSchema metadata."""

        model_class = PresentationDefinition
        unknown = RAISE
        skip_values = [None]

    id = fields.Str(required=True, metadata={"description": "Definition identifier"})
    name = fields.Str(required=False)
    purpose = fields.Str(required=False)
    format_ = fields.Dict(required=False, data_key="format")
    input_descriptors = fields.List(
        fields.Nested(InputDescriptorSchema),
        required=True,
    )
