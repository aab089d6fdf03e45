"""Node types of the CDISC Library resource graph.

The CDISC Library organises its content as a tree::

        ProductClass            e.g. data-tabulation
          ProductGroup          e.g. sdtmig
            Product             e.g. sdtmig-3-3
              DataClass         SDTM / SEND / CDASH family
                Dataset | Domain        (+ class level Variables / Fields)
                  Variable | Field      (+ Scenario for CDASH domains)
              DataStructure     ADaM family
                AnalysisVariableSet
                  Variable
              CodeList          terminology family
                Term

Every node is a dataclass deriving from :class:`ResourceNode`. Nodes hold the
API locator (``href``), a :class:`LoadState` and a reference to the single
:class:`~cdisc_library_client.transport.Connection` shared across the graph.
Children are kept in dictionaries keyed by their id.

The classes below only implement in-memory behaviour (traversal, matching,
formatting). Methods that need the network are coroutines that delegate to
:mod:`cdisc_library_client.loader`.

Typical navigation::

        product = await library.get_product("sdtmig33")
        dm = await product.get_item_group("DM")
        [item.name for item in dm.get_items().values()][:3]
        product.find_matching_items("TRxxPGy", mode="full")

Design notes:
        * Which child collection a product owns is decided once, from its id
          prefix, via :class:`DatasetType` / :class:`ProductKind`; item groups
          fix their item kind through the ``item_kind`` class variable.
        * :class:`Domain` and :class:`Scenario` both satisfy the
          :class:`FieldContainer` protocol; traversal is implemented by free
          functions operating on that protocol.
        * ``load_state`` never moves backwards (see :meth:`ResourceNode.advance`).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum, IntEnum
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Dict,
    List,
    Optional,
    Protocol,
    Union,
)

from .aliases import resolve_alias
from .formatting import convert_to_format, flatten_record, to_camel
from .matching import MatchMode, coerce_mode, match_item

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from .transport import Connection

_ITEM_GROUP_HREF_RE = re.compile(
    r".*/(?:datastructures|datasets|domains)/([^/]*)/.*/([^/]*)$"
)
_VERSION_RE = re.compile(r".*?(\d[\d-]*)$")
_INTERNAL_FIELDS = ("connection", "load_state")


# ---------------------------------------------------------------------------
# Identifier helpers
# ---------------------------------------------------------------------------


def last_segment(href: str) -> str:
    """Return the last path segment of a locator."""
    return href.rstrip("/").rsplit("/", 1)[-1]


def product_id_from_href(href: str) -> str:
    """Derive a product id from its locator.

    Example:
        >>> product_id_from_href("/mdr/sdtmig/3-3")
        'sdtmig-3-3'
        >>> product_id_from_href("/mdr/adam/adamig-1-1")
        'adamig-1-1'
    """
    if href.startswith("/mdr/ct/") or href.startswith("/mdr/adam/"):
        return last_segment(href)
    parts = href.rstrip("/").split("/")
    if len(parts) < 2:
        return parts[-1]
    return f"{parts[-2]}-{parts[-1]}"


def product_version_from_href(href: str, terminology: bool = False) -> Optional[str]:
    """Extract the version from the trailing digits of a product locator.

    Terminology versions are dates and keep their dashes, other versions use
    dots (``/mdr/sdtmig/3-3`` -> ``3.3``).
    """
    match = _VERSION_RE.match(href)
    if match is None:
        return None
    version = match.group(1)
    return version if terminology else version.replace("-", ".")


def item_id_from_href(href: str) -> str:
    """Derive an item id, prefixing the owning item group when present.

    Example:
        >>> item_id_from_href("/mdr/sdtmig/3-3/datasets/DM/variables/USUBJID")
        'DM.USUBJID'
    """
    match = _ITEM_GROUP_HREF_RE.match(href)
    if match is not None:
        return f"{match.group(1)}.{match.group(2)}"
    return last_segment(href)


def model_from_product_id(product_id: str, product_type: Optional[str] = None) -> Optional[str]:
    lowered = product_id.lower()
    for prefix, model in (("adam", "ADaM"), ("sdtm", "SDTM"), ("send", "SEND"), ("cdash", "CDASH")):
        if lowered.startswith(prefix):
            return model
    if product_type == "Terminology":
        return "SDTM"
    return None


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class LoadState(IntEnum):
    """How much of a node has been fetched. Ordered: STUB < PARTIAL < FULL."""

    STUB = 0
    PARTIAL = 1
    FULL = 2


class ProductKind(str, Enum):
    """Child collection owned by a product."""

    DATA_STRUCTURE = "dataStructures"
    DATA_CLASS = "dataClasses"
    CODE_LIST = "codelists"


class DatasetType(str, Enum):
    """Name of the item group collection exposed by the API for a product."""

    DATA_STRUCTURES = "dataStructures"
    DATASETS = "datasets"
    DOMAINS = "domains"
    CODELISTS = "codelists"

    @property
    def kind(self) -> ProductKind:
        if self is DatasetType.DATA_STRUCTURES:
            return ProductKind.DATA_STRUCTURE
        if self is DatasetType.CODELISTS:
            return ProductKind.CODE_LIST
        return ProductKind.DATA_CLASS

    @property
    def endpoint(self) -> str:
        """Path segment of the listing endpoint (``datastructures``...)."""
        return self.value.lower()


class ItemKind(str, Enum):
    """Attribute holding the items of an item group in API payloads."""

    FIELDS = "fields"
    ANALYSIS_VARIABLES = "analysisVariables"
    DATASET_VARIABLES = "datasetVariables"


class Outcome(Enum):
    """Sentinel outcomes of point fetches."""

    NOT_FOUND = "not_found"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return self.name


NOT_FOUND = Outcome.NOT_FOUND


def _scalar(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {
            to_camel(f.name): _plain(getattr(value, f.name))
            for f in fields(value)
            if f.name != "connection"
        }
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Base node
# ---------------------------------------------------------------------------


@dataclass
class ResourceNode:
    """Common shape of every node in the graph.

    Attributes:
        href: API locator; ``None`` for purely in-memory composites.
        load_state: See :class:`LoadState`.
        connection: Shared transport context (never copied, excluded from
            equality, repr and :meth:`to_dict`).
    """

    href: Optional[str] = None
    load_state: LoadState = LoadState.PARTIAL
    connection: Optional["Connection"] = field(default=None, repr=False, compare=False)

    @property
    def fully_loaded(self) -> bool:
        return self.load_state is LoadState.FULL

    def advance(self, state: LoadState) -> None:
        """Move ``load_state`` forward to ``state``; never downgrades."""
        if state > self.load_state:
            self.load_state = state

    def to_dict(self) -> Dict[str, Any]:
        """Recursive plain-dict view with API (camelCase) key names."""
        return _plain(self)

    def to_record(self) -> Dict[str, Any]:
        """Flat record of the scalar attributes of this node."""
        return flatten_record(
            {
                to_camel(f.name): _scalar(getattr(self, f.name))
                for f in fields(self)
                if f.name not in _INTERNAL_FIELDS
            }
        )

    async def get_raw_response(self, href: Optional[str] = None) -> Any:
        """Return the decoded API response for the node (``{}`` on failure)."""
        target = href or self.href
        if self.connection is None or target is None:
            return {}
        return await self.connection.api_request(target)

    async def load(self, href: Optional[str] = None) -> bool:
        """Fetch and parse this node from its locator.

        Returns:
            bool: True when the node was loaded, False on any failure.
        """
        from .loader import load_node

        return await load_node(self, href)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@dataclass
class Item(ResourceNode):
    """Leaf describing a variable or a field."""

    id: Optional[str] = None
    ordinal: Optional[str] = None
    name: Optional[str] = None
    label: Optional[str] = None
    simple_datatype: Optional[str] = None
    codelist: Optional[str] = None
    codelist_href: Optional[str] = None
    type: Optional[str] = None

    def __post_init__(self) -> None:
        if self.id is None:
            if self.href is not None:
                self.id = item_id_from_href(self.href)
            else:
                self.id = self.name

    async def get_code_list(self, ct_version: Optional[str] = None) -> Optional["CodeList"]:
        """Load the code list referenced by this item.

        Args:
            ct_version: CT package id (or part of it) to pick a specific
                version, e.g. ``sdtmct-2019-12-20``. Latest when omitted.
        """
        from .loader import load_item_code_list

        return await load_item_code_list(self, ct_version)


@dataclass
class Variable(Item):
    """Dataset variable or analysis variable."""

    description: Optional[str] = None
    core: Optional[str] = None
    role: Optional[str] = None
    role_description: Optional[str] = None
    value_list: Optional[List[str]] = None
    described_value_domain: Optional[str] = None


@dataclass
class Field(Item):
    """CDASH data collection field."""

    definition: Optional[str] = None
    question_text: Optional[str] = None
    prompt: Optional[str] = None
    completion_instructions: Optional[str] = None
    implementation_notes: Optional[str] = None
    mapping_instructions: Optional[str] = None
    sdtmig_dataset_mapping_targets_href: Optional[str] = None


ItemType = Union[Variable, Field]


# ---------------------------------------------------------------------------
# Field containers
# ---------------------------------------------------------------------------


class FieldContainer(Protocol):
    """Anything holding items and, optionally, nested containers."""

    items: Dict[str, Item]

    def nested_containers(self) -> List["FieldContainer"]: ...


def container_items(container: FieldContainer) -> Dict[str, Item]:
    """Own items followed by the items of nested containers, keyed by id.

    Items shared by several scenarios appear once.
    """
    result: Dict[str, Item] = dict(container.items)
    for nested in container.nested_containers():
        result.update(container_items(nested))
    return result


def container_name_list(container: FieldContainer) -> List[str]:
    """Item names of the container and its nested containers, deduplicated."""
    names: List[str] = []
    for item in container.items.values():
        if item.name is not None and item.name not in names:
            names.append(item.name)
    for nested in container.nested_containers():
        for name in container_name_list(nested):
            if name not in names:
                names.append(name)
    return names


def container_item(container: FieldContainer, name: str) -> Optional[Item]:
    """First item called ``name`` (exact match)."""
    for item in container_items(container).values():
        if item.name == name:
            return item
    return None


def container_matching_items(
    container: FieldContainer,
    name: str,
    mode: Union[str, MatchMode] = MatchMode.FULL,
    first_only: bool = False,
) -> List[Item]:
    """Items whose (template) name matches ``name``.

    Raises:
        ValueError: For an unknown matching mode.
    """
    mode = coerce_mode(mode)
    result: List[Item] = []
    for item in container.items.values():
        if item.name is not None and match_item(name, item.name, mode):
            result.append(item)
            if first_only:
                return result
    for nested in container.nested_containers():
        result.extend(container_matching_items(nested, name, mode, first_only))
        if first_only and result:
            return result
    return result


def container_records(
    container: FieldContainer,
    group_id: Optional[str] = None,
    additional_props: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """Flat records for every item, prefixed with ``additional_props``.

    ``group_id`` adds an ``itemGroup`` column.
    """
    records: List[Dict[str, Any]] = []
    for item in container_items(container).values():
        record: Dict[str, Any] = dict(additional_props or {})
        if group_id is not None:
            record["itemGroup"] = group_id
        record.update(item.to_record())
        records.append(flatten_record(record))
    return records


# ---------------------------------------------------------------------------
# Item groups
# ---------------------------------------------------------------------------


@dataclass
class ItemGroup(ResourceNode):
    """Base class for datasets, domains and analysis variable sets."""

    item_kind: ClassVar[ItemKind] = ItemKind.DATASET_VARIABLES

    id: Optional[str] = None
    name: Optional[str] = None
    label: Optional[str] = None
    type: Optional[str] = None
    items: Dict[str, Item] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.name is None and self.href is not None:
            self.name = last_segment(self.href)
        if self.id is None:
            self.id = self.name

    def nested_containers(self) -> List[FieldContainer]:
        return []

    def get_items(self) -> Dict[str, Item]:
        """All items (scenario items included), keyed by id."""
        return container_items(self)

    def get_item(self, name: str) -> Optional[Item]:
        return container_item(self, name)

    def get_name_list(self) -> List[str]:
        return container_name_list(self)

    def find_matching_items(
        self, name: str, mode: Union[str, MatchMode] = "full", first_only: bool = False
    ) -> List[Item]:
        """Find items matching ``name``. ``TRxxPGy`` matches ``TR01PG12``."""
        return container_matching_items(self, name, mode, first_only)

    def get_formatted_items(
        self,
        format: Optional[str] = None,
        add_item_group_id: bool = False,
        additional_props: Optional[Dict[str, Any]] = None,
    ) -> Union[List[Dict[str, Any]], str]:
        """Items as flat records, optionally serialized.

        Args:
            format: ``json``, ``csv`` or None for the record list.
            add_item_group_id: Add an ``itemGroup`` column with this group's id.
            additional_props: Columns prepended to every record.
        """
        group_id = self.id if add_item_group_id else None
        return convert_to_format(
            container_records(self, group_id, additional_props), format
        )


@dataclass
class Dataset(ItemGroup):
    item_kind: ClassVar[ItemKind] = ItemKind.DATASET_VARIABLES

    description: Optional[Any] = None
    data_structure: Optional[Any] = None


@dataclass
class AnalysisVariableSet(ItemGroup):
    item_kind: ClassVar[ItemKind] = ItemKind.ANALYSIS_VARIABLES


@dataclass
class Scenario(ResourceNode):
    """Alternate field set of a CDASH domain."""

    id: Optional[str] = None
    domain: Optional[str] = None
    scenario: Optional[str] = None
    type: Optional[str] = None
    items: Dict[str, Item] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.id is None and self.href is not None:
            self.id = last_segment(self.href)

    def nested_containers(self) -> List[FieldContainer]:
        return []

    def get_items(self) -> Dict[str, Item]:
        return container_items(self)

    def get_name_list(self) -> List[str]:
        return container_name_list(self)

    def find_matching_items(
        self, name: str, mode: Union[str, MatchMode] = "full", first_only: bool = False
    ) -> List[Item]:
        return container_matching_items(self, name, mode, first_only)


@dataclass
class Domain(ItemGroup):
    item_kind: ClassVar[ItemKind] = ItemKind.FIELDS

    scenarios: Optional[Dict[str, Scenario]] = None

    def nested_containers(self) -> List[FieldContainer]:
        return list((self.scenarios or {}).values())


# ---------------------------------------------------------------------------
# Data structures and data classes
# ---------------------------------------------------------------------------


@dataclass
class DataStructure(ResourceNode):
    """ADaM data structure (ADSL, BDS, OCCDS...)."""

    id: Optional[str] = None
    name: Optional[str] = None
    label: Optional[str] = None
    description: Optional[Any] = None
    class_name: Optional[str] = None
    analysis_variable_sets: Dict[str, AnalysisVariableSet] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.id is None:
            self.id = last_segment(self.href) if self.href is not None else self.name

    def get_items(self) -> Dict[str, Item]:
        result: Dict[str, Item] = {}
        for variable_set in self.analysis_variable_sets.values():
            result.update(variable_set.get_items())
        return result

    def get_item(self, name: str) -> Optional[Item]:
        for item in self.get_items().values():
            if item.name == name:
                return item
        return None

    def get_name_list(self) -> List[str]:
        names: List[str] = []
        for variable_set in self.analysis_variable_sets.values():
            for item_name in variable_set.get_name_list():
                if item_name not in names:
                    names.append(item_name)
        return names

    def find_matching_items(
        self, name: str, mode: Union[str, MatchMode] = "full", first_only: bool = False
    ) -> List[Item]:
        mode = coerce_mode(mode)
        result: List[Item] = []
        for variable_set in self.analysis_variable_sets.values():
            result.extend(variable_set.find_matching_items(name, mode, first_only))
            if first_only and result:
                break
        return result

    def get_formatted_items(
        self,
        format: Optional[str] = None,
        add_item_group_id: bool = False,
        additional_props: Optional[Dict[str, Any]] = None,
    ) -> Union[List[Dict[str, Any]], str]:
        """Variables of every analysis variable set as flat records.

        Each record carries a ``dataStructure`` column, and an ``itemGroup``
        column with this data structure's id when ``add_item_group_id`` is set.
        """
        records: List[Dict[str, Any]] = []
        for variable_set in self.analysis_variable_sets.values():
            props: Dict[str, Any] = dict(additional_props or {})
            if add_item_group_id:
                props["itemGroup"] = self.id
            props["dataStructure"] = self.id
            props["analysisVariableSet"] = variable_set.id
            records.extend(container_records(variable_set, None, props))
        return convert_to_format(records, format)

    def get_variable_set_list(
        self, descriptions: bool = False
    ) -> Union[List[str], Dict[str, Optional[str]]]:
        """Ids of the analysis variable sets, or ``{id: label}``."""
        if descriptions:
            return {
                set_id: variable_set.label
                for set_id, variable_set in self.analysis_variable_sets.items()
            }
        return list(self.analysis_variable_sets)


ItemGroupType = Union[DataStructure, Dataset, Domain]


@dataclass
class DataClass(ResourceNode):
    """SDTM/SEND/CDASH class (Events, Findings...)."""

    id: Optional[str] = None
    ordinal: Optional[str] = None
    name: Optional[str] = None
    label: Optional[str] = None
    description: Optional[Any] = None
    datasets: Optional[Dict[str, Dataset]] = None
    domains: Optional[Dict[str, Domain]] = None
    class_variables: Optional[Dict[str, Variable]] = None
    cdash_model_fields: Optional[Dict[str, Field]] = None

    def __post_init__(self) -> None:
        if self.id is None:
            self.id = last_segment(self.href) if self.href is not None else self.name

    def get_items(self, immediate: bool = False) -> Dict[str, Item]:
        """Items of the class.

        Args:
            immediate: Only class level variables / model fields, skip the
                datasets and domains.
        """
        result: Dict[str, Item] = {}
        if not immediate:
            for group in list((self.datasets or {}).values()) + list(
                (self.domains or {}).values()
            ):
                result.update(group.get_items())
        for variable in (self.class_variables or {}).values():
            result[variable.id] = variable
        for model_field in (self.cdash_model_fields or {}).values():
            result[model_field.id] = model_field
        return result

    def get_item(self, name: str) -> Optional[Item]:
        for item in self.get_items().values():
            if item.name == name:
                return item
        return None

    def get_item_groups(self) -> Dict[str, ItemGroup]:
        """Domains when present, datasets otherwise."""
        if self.domains:
            return dict(self.domains)
        if self.datasets:
            return dict(self.datasets)
        return {}

    def find_matching_items(
        self, name: str, mode: Union[str, MatchMode] = "full", first_only: bool = False
    ) -> List[Item]:
        mode = coerce_mode(mode)
        result: List[Item] = []
        for group in list((self.datasets or {}).values()) + list(
            (self.domains or {}).values()
        ):
            result.extend(group.find_matching_items(name, mode, first_only))
            if first_only and result:
                return result
        for collection in (self.class_variables, self.cdash_model_fields):
            for item in (collection or {}).values():
                if item.name is not None and match_item(name, item.name, mode):
                    result.append(item)
                    if first_only:
                        return result
        return result

    def item_group_collection(self, dataset_type: DatasetType) -> Dict[str, Any]:
        """Return (creating when needed) the datasets or domains mapping."""
        if dataset_type is DatasetType.DOMAINS:
            if self.domains is None:
                self.domains = {}
            return self.domains
        if self.datasets is None:
            self.datasets = {}
        return self.datasets


# ---------------------------------------------------------------------------
# Terminology
# ---------------------------------------------------------------------------


@dataclass
class Term:
    """Coded value of a code list."""

    concept_id: Optional[str] = None
    submission_value: Optional[str] = None
    definition: Optional[str] = None
    preferred_term: Optional[str] = None
    synonyms: Optional[List[str]] = None

    def to_record(self) -> Dict[str, Any]:
        return flatten_record(
            {to_camel(f.name): getattr(self, f.name) for f in fields(self)}
        )


@dataclass
class CodeList(ResourceNode):
    """Controlled terminology code list."""

    concept_id: Optional[str] = None
    name: Optional[str] = None
    extensible: Optional[bool] = None
    submission_value: Optional[str] = None
    definition: Optional[str] = None
    preferred_term: Optional[str] = None
    synonyms: Optional[List[str]] = None
    terms: List[Term] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.concept_id is None and self.href is not None:
            self.concept_id = last_segment(self.href)

    def to_record(self) -> Dict[str, Any]:
        record = super().to_record()
        record.pop("terms", None)
        return record

    def get_formatted_terms(
        self, format: Optional[str] = None
    ) -> Union[List[Dict[str, Any]], str]:
        return convert_to_format([term.to_record() for term in self.terms], format)

    async def get_versions(self) -> List[str]:
        """Ids of the CT packages in which this code list is published."""
        from .loader import load_code_list_versions

        return await load_code_list_versions(self)


# ---------------------------------------------------------------------------
# Products and catalog levels
# ---------------------------------------------------------------------------


@dataclass
class ProductDependency:
    """Product referenced from another product (model, prior version...)."""

    id: Optional[str] = None
    href: Optional[str] = None
    title: Optional[str] = None
    type: Optional[str] = None


@dataclass
class Product(ResourceNode):
    """Standard or terminology package.

    ``model``, ``dataset_type`` and ``kind`` are derived at construction from
    the id (or supplied explicitly) and select the single child collection the
    product owns: ``data_structures``, ``data_classes`` or ``codelists``.
    """

    id: Optional[str] = None
    name: Optional[str] = None
    label: Optional[str] = None
    type: Optional[str] = None
    description: Optional[Any] = None
    source: Optional[str] = None
    effective_date: Optional[str] = None
    registration_status: Optional[str] = None
    version: Optional[str] = None
    model: Optional[str] = None
    dataset_type: Optional[DatasetType] = None
    data_structures: Optional[Dict[str, DataStructure]] = None
    data_classes: Optional[Dict[str, DataClass]] = None
    codelists: Optional[Dict[str, CodeList]] = None
    dependencies: Optional[Dict[str, ProductDependency]] = None

    def __post_init__(self) -> None:
        terminology = self.type == "Terminology"
        if self.id is None and self.href is not None:
            self.id = product_id_from_href(self.href)
        if self.version is None and self.href is not None:
            self.version = product_version_from_href(self.href, terminology)
        if self.model is None and self.id is not None:
            self.model = model_from_product_id(self.id, self.type)
        if self.dataset_type is None:
            self.dataset_type = self._default_dataset_type()
        elif not isinstance(self.dataset_type, DatasetType):
            self.dataset_type = DatasetType(self.dataset_type)
        self._init_collection()

    def _default_dataset_type(self) -> Optional[DatasetType]:
        if self.type == "Terminology":
            return DatasetType.CODELISTS
        return {
            "ADaM": DatasetType.DATA_STRUCTURES,
            "SDTM": DatasetType.DATASETS,
            "SEND": DatasetType.DATASETS,
            "CDASH": DatasetType.DOMAINS,
        }.get(self.model or "")

    def _init_collection(self) -> None:
        kind = self.kind
        if kind is ProductKind.CODE_LIST and self.codelists is None:
            self.codelists = {}
        elif kind is ProductKind.DATA_STRUCTURE and self.data_structures is None:
            self.data_structures = {}
        elif kind is ProductKind.DATA_CLASS and self.data_classes is None:
            self.data_classes = {}

    @property
    def kind(self) -> Optional[ProductKind]:
        return self.dataset_type.kind if self.dataset_type is not None else None

    def adopt_dataset_type(self, dataset_type: DatasetType) -> None:
        """Fix the dataset type of a product whose kind was unknown."""
        if self.dataset_type is None:
            self.dataset_type = dataset_type
            self._init_collection()

    def to_record(self) -> Dict[str, Any]:
        record = super().to_record()
        record["fullyLoaded"] = self.fully_loaded
        return record

    def get_current_item_groups(self) -> Dict[str, Any]:
        """Item groups already resident in memory, keyed by id."""
        if self.kind is ProductKind.DATA_STRUCTURE:
            return dict(self.data_structures or {})
        result: Dict[str, Any] = {}
        for data_class in (self.data_classes or {}).values():
            result.update(data_class.get_item_groups())
        return result

    def get_current_items(self) -> Dict[str, Item]:
        result: Dict[str, Item] = {}
        for group in self.get_current_item_groups().values():
            result.update(group.get_items())
        if self.kind is ProductKind.DATA_CLASS:
            for data_class in (self.data_classes or {}).values():
                result.update(data_class.get_items(immediate=True))
        return result

    def find_matching_items(
        self, name: str, mode: Union[str, MatchMode] = "full", first_only: bool = False
    ) -> List[Item]:
        """Search items already resident in memory. No network access."""
        mode = coerce_mode(mode)
        if self.kind is ProductKind.DATA_STRUCTURE:
            sources: List[Any] = list((self.data_structures or {}).values())
        elif self.kind is ProductKind.DATA_CLASS:
            sources = list((self.data_classes or {}).values())
        else:
            sources = []
        result: List[Item] = []
        for source in sources:
            result.extend(source.find_matching_items(name, mode, first_only))
            if first_only and result:
                break
        return result

    async def get_items(self) -> Dict[str, Item]:
        """All items of the product, loading it fully first when needed."""
        if not self.fully_loaded:
            await self.load()
        return self.get_current_items()

    async def get_item_groups(
        self, type_: str = "long", format: Optional[str] = None
    ) -> Any:
        """Item groups of the product.

        Args:
            type_: ``long`` loads the full product and returns nodes, ``short``
                returns ``{name: {"name", "label"}}`` from the listing endpoint.
            format: Optional output format (``json``/``csv``).
        """
        from .loader import get_item_groups

        return await get_item_groups(self, type_, format)

    async def get_item_group(self, name: str, format: Optional[str] = None) -> Any:
        """Dataset, domain or data structure called ``name``.

        Returns:
            The node (or its formatted items when ``format`` is given),
            :data:`NOT_FOUND` when the product has no such group, ``None``
            when the request failed.
        """
        from .loader import get_item_group

        return await get_item_group(self, name, format)

    async def get_code_list_list(
        self, type_: str = "long", format: Optional[str] = None
    ) -> Any:
        from .loader import get_code_list_list

        return await get_code_list_list(self, type_, format)

    async def get_code_list(self, concept_id: str, format: Optional[str] = None) -> Any:
        from .loader import get_code_list

        return await get_code_list(self, concept_id, format)


@dataclass
class ProductGroup(ResourceNode):
    name: Optional[str] = None
    products: Dict[str, Product] = field(default_factory=dict)

    def get_products(self) -> Dict[str, Product]:
        return self.products

    def get_product_list(self) -> List[str]:
        return list(self.products)

    def get_product_id_by_alias(self, alias: str) -> Optional[str]:
        return resolve_alias(alias, self.products)

    async def get_full_product(
        self, alias: str, load_basic_info: bool = False
    ) -> Optional[Product]:
        """Return the product matching ``alias``, fully loaded unless asked not to.

        A failed detail fetch returns the product as it was (Partial).
        """
        product_id = self.get_product_id_by_alias(alias)
        if product_id is None:
            return None
        product = self.products[product_id]
        if not load_basic_info and not product.fully_loaded:
            await product.load()
        return product


@dataclass
class ProductClass(ResourceNode):
    name: Optional[str] = None
    product_groups: Dict[str, ProductGroup] = field(default_factory=dict)

    def get_product_groups(self) -> Dict[str, ProductGroup]:
        return self.product_groups

    def get_product_group_list(self) -> List[str]:
        return list(self.product_groups)

    def get_product_group(self, name: str) -> Optional[ProductGroup]:
        """Case-insensitive lookup of a product group."""
        for group_id, group in self.product_groups.items():
            if group_id.lower() == name.lower():
                return group
        return None

    def get_product_list(self) -> List[str]:
        result: List[str] = []
        for group in self.product_groups.values():
            result.extend(group.get_product_list())
        return result

    def get_product_id_by_alias(self, alias: str) -> Optional[tuple]:
        """Return ``(product_group_id, product_id)`` for ``alias``."""
        for group_id, group in self.product_groups.items():
            product_id = group.get_product_id_by_alias(alias)
            if product_id is not None:
                return group_id, product_id
        return None
