"""Presentation Exchange evaluation."""

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import jsonpath_ng as jsonpath
from acapy_agent.messaging.models.base import BaseModelError
from jsonpath_ng import DatumInContext as Matched
from jsonpath_ng import JSONPath
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError
from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, ValidationError

from sd_credential.disclosure import DisclosureVerifyResult

from .error import DefinitionInvalid
from .models.presentation_definition import (
    ConstraintField,
    InputDescriptor,
    PresentationDefinition,
)

LOGGER = logging.getLogger(__name__)


def load_definition(
    definition: Union[dict, PresentationDefinition],
) -> PresentationDefinition:
    """Deserialize and sanity check a presentation definition."""
    if isinstance(definition, dict):
        try:
            definition = PresentationDefinition.deserialize(definition)
        except BaseModelError as err:
            raise DefinitionInvalid("Malformed presentation definition") from err
    elif not isinstance(definition, PresentationDefinition):
        raise DefinitionInvalid("definition must be dict or PresentationDefinition")

    if not definition.input_descriptors:
        raise DefinitionInvalid("Presentation definition requires a credential type")
    return definition


class FilterEvaluator:
    """Evaluate a filter."""

    def __init__(self, validator: Draft7Validator):
        """Initliaze."""
        self.validator = validator

    @classmethod
    def compile(cls, filter: dict) -> "FilterEvaluator":
        """Compile a filter."""
        try:
            Draft7Validator.check_schema(filter)
        except SchemaError as err:
            raise DefinitionInvalid("Invalid constraint filter") from err
        validator = Draft7Validator(filter)
        return cls(validator)

    def match(self, value: Any) -> bool:
        """Check value."""
        try:
            self.validator.validate(value)
            return True
        except ValidationError:
            return False


class ConstraintFieldEvaluator:
    """Evaluate a constraint."""

    def __init__(
        self,
        label: str,
        paths: Sequence[JSONPath],
        filter: Optional[FilterEvaluator] = None,
        optional: bool = False,
    ):
        """Initialize the constraint field evaluator."""
        self.label = label
        self.paths = paths
        self.filter = filter
        self.optional = optional

    @classmethod
    def compile(cls, constraint: Union[dict, ConstraintField]):
        """Compile a constraint field."""
        if isinstance(constraint, dict):
            constraint = ConstraintField.deserialize(constraint)
        elif not isinstance(constraint, ConstraintField):
            raise TypeError("constraint must be dict or ConstraintField")

        try:
            paths = [
                jsonpath.parse(path if path.startswith("$") else f"$.{path}")
                for path in constraint.path
            ]
        except (JsonPathLexerError, JsonPathParserError) as err:
            raise DefinitionInvalid(f"Invalid claim path {constraint.path}") from err

        filter = None
        if constraint.filter_:
            filter = FilterEvaluator.compile(constraint.filter_)

        # Unmet fields are reported as claim paths, without the root selector.
        label = constraint.path[0]
        if label.startswith("$."):
            label = label[2:]
        return cls(label, paths, filter, constraint.optional)

    def match(self, value: Any) -> Optional[Matched]:
        """Check if value matches and return path of first matching."""
        matched: Sequence[Matched] = [
            found for path in self.paths for found in path.find(value)
        ]
        if matched and self.filter is not None:
            for match in matched:
                if self.filter.match(match.value):
                    return match
            return None

        if matched:
            return matched[0]

        return None


VCT_PATHS = ("$.vct", "vct")


def _declared_type(descriptor: InputDescriptor) -> Optional[str]:
    """Credential type named explicitly or pinned by a ``$.vct`` filter."""
    if descriptor.credential_type:
        return descriptor.credential_type
    for constraint in descriptor.all_fields:
        if not any(path in VCT_PATHS for path in constraint.path):
            continue
        schema = constraint.filter_ or {}
        if isinstance(schema.get("const"), str):
            return schema["const"]
        enum = schema.get("enum")
        if isinstance(enum, list) and len(enum) == 1 and isinstance(enum[0], str):
            return enum[0]
    return None


def _merge(into: dict, claims: Mapping[str, Any]) -> dict:
    """Deep merge claims into a fresh dict; values already present win."""
    for key, value in claims.items():
        if key not in into:
            into[key] = deepcopy(value)
        elif isinstance(value, dict) and isinstance(into[key], dict):
            _merge(into[key], value)
    return into


class DescriptorEvaluator:
    """Evaluate input descriptors."""

    def __init__(
        self,
        id: str,
        credential_type: Optional[str],
        field_constraints: List[ConstraintFieldEvaluator],
    ):
        """Initialize descriptor evaluator.

        A credential_type of None accepts credentials of any type; the fields
        alone decide.
        """
        self.id = id
        self.credential_type = credential_type
        self._field_constraints = field_constraints

    @classmethod
    def compile(cls, descriptor: Union[dict, InputDescriptor]) -> "DescriptorEvaluator":
        """Compile an input descriptor."""
        if isinstance(descriptor, dict):
            descriptor = InputDescriptor.deserialize(descriptor)
        elif not isinstance(descriptor, InputDescriptor):
            raise TypeError("descriptor must be dict or InputDescriptor")

        field_constraints = [
            ConstraintFieldEvaluator.compile(constraint)
            for constraint in descriptor.all_fields
        ]
        credential_type = _declared_type(descriptor)
        if credential_type is None and not any(
            not c.optional for c in field_constraints
        ):
            raise DefinitionInvalid(
                f"Input descriptor {descriptor.id} demands neither a type nor a claim"
            )
        return cls(descriptor.id, credential_type, field_constraints)

    @property
    def labels(self) -> List[str]:
        """Paths of every required field."""
        return [c.label for c in self._field_constraints if not c.optional]

    def accepts(self, item: DisclosureVerifyResult) -> bool:
        """Whether a presented credential is of the demanded type."""
        return self.credential_type is None or (
            item.credential_type == self.credential_type
        )

    def match(
        self, candidates: Sequence[DisclosureVerifyResult]
    ) -> Tuple[Dict[str, Any], dict, List[str]]:
        """Match every field against the union of the candidates.

        Returns matched fields, the merged claims of the candidates that
        supplied a field, and the labels of required fields no candidate
        revealed.
        """
        matched_fields = {}
        contributors: List[DisclosureVerifyResult] = []
        unmet = []
        for constraint in self._field_constraints:
            for candidate in candidates:
                # vct is part of the envelope, not the claims, but may be matched.
                value = {**candidate.claims, "vct": candidate.credential_type}
                matched = constraint.match(value)
                if matched is not None:
                    matched_fields[str(matched.full_path)] = matched.value
                    if not any(c is candidate for c in contributors):
                        contributors.append(candidate)
                    break
            else:
                if not constraint.optional:
                    unmet.append(constraint.label)

        claims: dict = {}
        for candidate in contributors or candidates[:1]:
            _merge(claims, candidate.claims)
        return matched_fields, claims, unmet


@dataclass
class PexVerifyResult:
    """Result of verification."""

    verified: bool = False
    descriptor_id_to_claims: Dict[str, dict] = field(default_factory=dict)
    descriptor_id_to_fields: Dict[str, Any] = field(default_factory=dict)
    unmet: List[str] = field(default_factory=list)
    details: Optional[str] = None


class PresentationExchangeEvaluator:
    """Evaluate verified credentials against a presentation definition."""

    def __init__(self, id: str, descriptors: List[DescriptorEvaluator]):
        """Initialize the evaluator."""
        self.id = id
        self._descriptors = descriptors

    @classmethod
    def compile(cls, definition: Union[dict, PresentationDefinition]):
        """Compile a presentation definition object into evaluatable state."""
        definition = load_definition(definition)
        descriptors = [
            DescriptorEvaluator.compile(desc) for desc in definition.input_descriptors
        ]
        return cls(definition.id, descriptors)

    def verify(self, presented: Sequence[DisclosureVerifyResult]) -> PexVerifyResult:
        """Check every descriptor against the presented credentials.

        A required field is met when at least one presented credential of the
        descriptor's type reveals it; the fields of one descriptor may be
        spread over several credentials.
        """
        descriptor_id_to_claims = {}
        descriptor_id_to_fields = {}
        unmet: List[str] = []

        for evaluator in self._descriptors:
            candidates = [item for item in presented if evaluator.accepts(item)]
            if not candidates:
                LOGGER.info("No credential of type %s presented", evaluator.credential_type)
                missing = evaluator.labels or [evaluator.credential_type]
            else:
                fields, claims, missing = evaluator.match(candidates)
                descriptor_id_to_claims[evaluator.id] = claims
                descriptor_id_to_fields[evaluator.id] = fields
            for label in missing:
                if label not in unmet:
                    unmet.append(label)

        if unmet:
            return PexVerifyResult(
                unmet=unmet, details=f"Unmet constraints: {', '.join(unmet)}"
            )

        return PexVerifyResult(
            verified=True,
            descriptor_id_to_claims=descriptor_id_to_claims,
            descriptor_id_to_fields=descriptor_id_to_fields,
        )
