"""Wire-format models for CDISC Library API payloads.

The API returns HAL-style JSON documents whose shape depends on the resource:
products carry ``classes`` or ``dataStructures`` or ``codelists``, item groups
carry ``datasetVariables`` or ``analysisVariables`` or ``fields`` and so on.
Every collection is optional and documents frequently omit keys. The models
below make that explicit: each known key is an optional field, absent keys stay
``None`` and unknown keys are kept (``extra="allow"``) so nothing is lost.

Resource models are lenient: a value of the wrong shape is dropped (``None``)
and a list keeps only the elements that validate, so one odd variable does not
hide the rest of a product.

Numbers that the API sometimes sends as strings (``ordinal``) are normalised
to strings.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)

logger = logging.getLogger(__name__)


class ApiModel(BaseModel):
    """Base for all payload models."""

    model_config = ConfigDict(
        extra="allow", populate_by_name=True, coerce_numbers_to_str=True
    )


class LenientModel(ApiModel):
    """Payload model that skips malformed values instead of rejecting the document."""

    @field_validator("*", mode="wrap")
    @classmethod
    def _skip_malformed(
        cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo
    ) -> Any:
        try:
            return handler(value)
        except ValidationError as e:
            if not isinstance(value, list):
                logger.warning(
                    f"Dropping malformed {cls.__name__}.{info.field_name}: "
                    f"{e.errors()[0]['msg']}"
                )
                return None

        kept: List[Any] = []
        for index, element in enumerate(value):
            try:
                kept.extend(handler([element]))
            except ValidationError as e:
                logger.warning(
                    f"Skipping malformed {cls.__name__}.{info.field_name}[{index}]: "
                    f"{e.errors()[0]['msg']}"
                )
        return kept or None

class Link(LenientModel):
    """Single HAL link object."""

    href: Optional[str] = None
    title: Optional[str] = None
    type: Optional[str] = None


class Links(LenientModel):
    """The ``_links`` section of a payload.

    Named relations used by the client are declared; every other relation
    (product dependencies, listing collections) remains available through
    :meth:`relations`.
    """

    self_link: Optional[Link] = Field(default=None, alias="self")
    parent_class: Optional[Link] = Field(default=None, alias="parentClass")
    parent_product: Optional[Link] = Field(default=None, alias="parentProduct")
    scenarios: Optional[List[Link]] = None
    codelist: Optional[Union[List[Link], Link]] = None
    versions: Optional[List[Link]] = None
    sdtmig_dataset_mapping_targets: Optional[Link] = Field(
        default=None, alias="sdtmigDatasetMappingTargets"
    )

    def relations(self) -> Dict[str, Any]:
        """Return relations not declared as fields, keyed by their API name."""
        return dict(self.model_extra or {})

    def link_list(self, name: str) -> List[Link]:
        """Return the links stored under relation ``name`` as a list."""
        raw = self.relations().get(name)
        if raw is None:
            return []
        if isinstance(raw, dict):
            raw = [raw]
        return [Link.model_validate(entry) for entry in raw if isinstance(entry, dict)]

    @property
    def first_codelist(self) -> Optional[Link]:
        if isinstance(self.codelist, list):
            return self.codelist[0] if self.codelist else None
        return self.codelist


class Resource(LenientModel):
    """Attributes shared by most API resources."""

    name: Optional[str] = None
    label: Optional[str] = None
    title: Optional[str] = None
    description: Optional[Any] = None
    ordinal: Optional[str] = None
    links: Optional[Links] = Field(default=None, alias="_links")

    @property
    def self_href(self) -> Optional[str]:
        if self.links is not None and self.links.self_link is not None:
            return self.links.self_link.href
        return None

    @property
    def self_type(self) -> Optional[str]:
        if self.links is not None and self.links.self_link is not None:
            return self.links.self_link.type
        return None


class ItemPayload(Resource):
    """Variable or field payload. Attributes of both kinds are optional."""

    id: Optional[str] = None
    simple_datatype: Optional[str] = Field(default=None, alias="simpleDatatype")
    # Variables
    core: Optional[str] = None
    role: Optional[str] = None
    role_description: Optional[str] = Field(default=None, alias="roleDescription")
    value_list: Optional[List[str]] = Field(default=None, alias="valueList")
    described_value_domain: Optional[str] = Field(
        default=None, alias="describedValueDomain"
    )
    # Fields
    definition: Optional[str] = None
    question_text: Optional[str] = Field(default=None, alias="questionText")
    prompt: Optional[str] = None
    completion_instructions: Optional[str] = Field(
        default=None, alias="completionInstructions"
    )
    implementation_notes: Optional[str] = Field(
        default=None, alias="implementationNotes"
    )
    mapping_instructions: Optional[str] = Field(
        default=None, alias="mappingInstructions"
    )


class ItemGroupPayload(Resource):
    """Dataset, domain or analysis variable set."""

    id: Optional[str] = None
    data_structure: Optional[Any] = Field(default=None, alias="dataStructure")
    dataset_variables: Optional[List[ItemPayload]] = Field(
        default=None, alias="datasetVariables"
    )
    analysis_variables: Optional[List[ItemPayload]] = Field(
        default=None, alias="analysisVariables"
    )
    field_items: Optional[List[ItemPayload]] = Field(default=None, alias="fields")


class ScenarioPayload(Resource):
    domain: Optional[str] = None
    scenario: Optional[str] = None
    field_items: Optional[List[ItemPayload]] = Field(default=None, alias="fields")


class DataStructurePayload(Resource):
    class_name: Optional[str] = Field(default=None, alias="className")
    analysis_variable_sets: Optional[List[ItemGroupPayload]] = Field(
        default=None, alias="analysisVariableSets"
    )


class DataClassPayload(Resource):
    datasets: Optional[List[ItemGroupPayload]] = None
    domains: Optional[List[ItemGroupPayload]] = None
    scenarios: Optional[List[ScenarioPayload]] = None
    class_variables: Optional[List[ItemPayload]] = Field(
        default=None, alias="classVariables"
    )
    cdash_model_fields: Optional[List[ItemPayload]] = Field(
        default=None, alias="cdashModelFields"
    )


class TermPayload(LenientModel):
    concept_id: Optional[str] = Field(default=None, alias="conceptId")
    submission_value: Optional[str] = Field(default=None, alias="submissionValue")
    definition: Optional[str] = None
    preferred_term: Optional[str] = Field(default=None, alias="preferredTerm")
    synonyms: Optional[List[str]] = None


class CodeListPayload(Resource):
    concept_id: Optional[str] = Field(default=None, alias="conceptId")
    extensible: Optional[Union[bool, str]] = None
    submission_value: Optional[str] = Field(default=None, alias="submissionValue")
    definition: Optional[str] = None
    preferred_term: Optional[str] = Field(default=None, alias="preferredTerm")
    synonyms: Optional[List[str]] = None
    terms: Optional[List[TermPayload]] = None


class ProductPayload(Resource):
    """Full product document."""

    type: Optional[str] = None
    source: Optional[str] = None
    effective_date: Optional[str] = Field(default=None, alias="effectiveDate")
    registration_status: Optional[str] = Field(
        default=None, alias="registrationStatus"
    )
    version: Optional[str] = None
    data_structures: Optional[List[DataStructurePayload]] = Field(
        default=None, alias="dataStructures"
    )
    classes: Optional[List[DataClassPayload]] = None
    domains: Optional[List[ItemGroupPayload]] = None
    codelists: Optional[List[CodeListPayload]] = None


class ListingPayload(LenientModel):
    """Any document whose only interesting content is its ``_links``."""

    links: Optional[Links] = Field(default=None, alias="_links")


class SearchPayload(ApiModel):
    has_more: Optional[bool] = Field(default=None, alias="hasMore")
    total_hits: Optional[int] = Field(default=None, alias="totalHits")
    hits: Optional[List[Dict[str, Any]]] = None
