"""Conversion of CDISC Library payloads into graph nodes.

Each ``parse_*`` function takes an existing node and a payload (raw ``dict``
or the matching :mod:`~cdisc_library_client.schemas` model) and updates the
node in place:

        * Scalar attributes present in the payload replace the node's values;
          absent attributes are left untouched.
        * A child collection present in the payload replaces the node's whole
          collection; an absent collection is left untouched.
        * The node is marked :attr:`LoadState.FULL` since its complete
          representation was parsed.

``build_*`` helpers create new child nodes sharing the parent's connection.

Payloads failing validation are logged and treated as empty, so a single
malformed resource never aborts a wider traversal.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .models import (
    AnalysisVariableSet,
    CodeList,
    DataClass,
    DataStructure,
    Dataset,
    DatasetType,
    Domain,
    Field,
    Item,
    ItemGroup,
    ItemKind,
    LoadState,
    Product,
    ProductClass,
    ProductDependency,
    ProductGroup,
    ResourceNode,
    Scenario,
    Term,
    Variable,
    last_segment,
    product_id_from_href,
)
from .schemas import (
    CodeListPayload,
    DataClassPayload,
    DataStructurePayload,
    ItemGroupPayload,
    ItemPayload,
    Link,
    ListingPayload,
    ProductPayload,
    Resource,
    ScenarioPayload,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_VARIABLE_ATTRIBUTES = (
    "description",
    "core",
    "role",
    "role_description",
    "value_list",
    "described_value_domain",
)
_FIELD_ATTRIBUTES = (
    "definition",
    "question_text",
    "prompt",
    "completion_instructions",
    "implementation_notes",
    "mapping_instructions",
)


def validate_payload(model: Type[ModelT], raw: Any) -> Optional[ModelT]:
    """Validate ``raw`` against ``model``; None when absent or malformed."""
    if isinstance(raw, model):
        return raw
    if not isinstance(raw, dict):
        if raw not in (None, "", {}):
            logger.warning(f"Unexpected {model.__name__} payload type: {type(raw).__name__}")
        return None
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed {model.__name__} payload: {e}")
        return None


def _assign(target: Any, payload: Any, names: Iterable[str]) -> None:
    for name in names:
        value = getattr(payload, name, None)
        if value is not None:
            setattr(target, name, value)


def _group_id(payload: Resource) -> Optional[str]:
    href = payload.self_href
    return last_segment(href) if href else payload.name


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def parse_item(item: Item, payload: ItemPayload) -> Item:
    _assign(item, payload, ("ordinal", "name", "label", "simple_datatype"))
    if payload.links is not None:
        codelist = payload.links.first_codelist
        if codelist is not None and codelist.href:
            item.codelist_href = codelist.href
            item.codelist = last_segment(codelist.href)
        if payload.self_type:
            item.type = payload.self_type
    if isinstance(item, Variable):
        _assign(item, payload, _VARIABLE_ATTRIBUTES)
    elif isinstance(item, Field):
        _assign(item, payload, _FIELD_ATTRIBUTES)
        targets = payload.links.sdtmig_dataset_mapping_targets if payload.links else None
        if targets is not None and targets.href:
            item.sdtmig_dataset_mapping_targets_href = targets.href
    item.advance(LoadState.FULL)
    return item


def build_items(
    payloads: Optional[List[ItemPayload]], kind: ItemKind, connection: Any
) -> Dict[str, Item]:
    """Build variables (or fields for :attr:`ItemKind.FIELDS`) keyed by id."""
    item_class: Type[Item] = Field if kind is ItemKind.FIELDS else Variable
    items: Dict[str, Item] = {}
    for payload in payloads or []:
        item = item_class(
            id=payload.id,
            name=payload.name,
            href=payload.self_href,
            connection=connection,
        )
        parse_item(item, payload)
        items[item.id] = item
    return items


# ---------------------------------------------------------------------------
# Item groups and scenarios
# ---------------------------------------------------------------------------


def _item_payloads(payload: ItemGroupPayload, kind: ItemKind) -> Optional[List[ItemPayload]]:
    if kind is ItemKind.DATASET_VARIABLES:
        return payload.dataset_variables
    if kind is ItemKind.ANALYSIS_VARIABLES:
        return payload.analysis_variables
    return payload.field_items


def parse_scenario(scenario: Scenario, payload: ScenarioPayload) -> Scenario:
    _assign(scenario, payload, ("domain", "scenario"))
    if payload.self_type:
        scenario.type = payload.self_type
    if payload.field_items is not None:
        scenario.items = build_items(payload.field_items, ItemKind.FIELDS, scenario.connection)
    scenario.advance(LoadState.FULL)
    return scenario


def parse_item_group(
    group: ItemGroup,
    raw: Any,
    scenarios: Optional[List[ScenarioPayload]] = None,
) -> ItemGroup:
    """Parse a dataset, domain or analysis variable set payload.

    Args:
        group: Node to update.
        raw: Item group payload.
        scenarios: Scenario payloads of the owning class (domains only); each
            scenario linked from the domain is matched by its self href.
    """
    payload = validate_payload(ItemGroupPayload, raw)
    if payload is None:
        return group
    _assign(group, payload, ("name", "label"))
    item_payloads = _item_payloads(payload, group.item_kind)
    if item_payloads is not None:
        group.items = build_items(item_payloads, group.item_kind, group.connection)
    if payload.self_type:
        group.type = payload.self_type

    if isinstance(group, Dataset):
        _assign(group, payload, ("description", "data_structure"))
    elif isinstance(group, Domain) and payload.links and payload.links.scenarios is not None:
        parsed: Dict[str, Scenario] = {}
        for link in payload.links.scenarios:
            scenario = Scenario(href=link.href, connection=group.connection)
            for candidate in scenarios or []:
                if candidate.self_href == scenario.href:
                    parse_scenario(scenario, candidate)
                    break
            parsed[scenario.id] = scenario
        group.scenarios = parsed
    group.advance(LoadState.FULL)
    return group


def build_item_group(
    group_class: Type[ItemGroup],
    payload: ItemGroupPayload,
    connection: Any,
    scenarios: Optional[List[ScenarioPayload]] = None,
) -> ItemGroup:
    group = group_class(
        id=_group_id(payload),
        name=payload.name,
        href=payload.self_href,
        connection=connection,
    )
    return parse_item_group(group, payload, scenarios)


# ---------------------------------------------------------------------------
# Data structures and data classes
# ---------------------------------------------------------------------------


def parse_data_structure(data_structure: DataStructure, raw: Any) -> DataStructure:
    payload = validate_payload(DataStructurePayload, raw)
    if payload is None:
        return data_structure
    _assign(data_structure, payload, ("name", "description", "class_name"))
    label = payload.label or payload.title
    if label is not None:
        data_structure.label = label
    if payload.analysis_variable_sets is not None:
        variable_sets: Dict[str, AnalysisVariableSet] = {}
        for set_payload in payload.analysis_variable_sets:
            variable_set = build_item_group(
                AnalysisVariableSet, set_payload, data_structure.connection
            )
            variable_sets[variable_set.id] = variable_set
        data_structure.analysis_variable_sets = variable_sets
    data_structure.advance(LoadState.FULL)
    return data_structure


def parse_data_class(
    data_class: DataClass,
    raw: Any,
    product_domains: Optional[List[ItemGroupPayload]] = None,
) -> DataClass:
    """Parse a class payload.

    Args:
        data_class: Node to update.
        raw: Class payload.
        product_domains: CDASH products list domains next to the classes;
            those whose ``parentClass`` link points to this class are attached.
    """
    payload = validate_payload(DataClassPayload, raw)
    if payload is None:
        return data_class
    _assign(data_class, payload, ("name", "ordinal", "label", "description"))
    if data_class.href is None and payload.self_href:
        data_class.href = payload.self_href
    connection = data_class.connection

    if payload.datasets is not None:
        datasets: Dict[str, Dataset] = {}
        for dataset_payload in payload.datasets:
            dataset = build_item_group(Dataset, dataset_payload, connection)
            datasets[dataset.id] = dataset
        data_class.datasets = datasets

    own_domains = payload.domains is not None
    domain_payloads = payload.domains if own_domains else product_domains
    if domain_payloads is not None:
        domains: Dict[str, Domain] = {}
        for domain_payload in domain_payloads:
            links = domain_payload.links
            parent = links.parent_class if links is not None else None
            if not own_domains and (parent is None or parent.href != data_class.href):
                continue
            domain = build_item_group(Domain, domain_payload, connection, payload.scenarios)
            domains[domain.id] = domain
        data_class.domains = domains

    if payload.class_variables is not None:
        data_class.class_variables = build_items(
            payload.class_variables, ItemKind.DATASET_VARIABLES, connection
        )
    if payload.cdash_model_fields is not None:
        data_class.cdash_model_fields = build_items(
            payload.cdash_model_fields, ItemKind.FIELDS, connection
        )
    data_class.advance(LoadState.FULL)
    return data_class


# ---------------------------------------------------------------------------
# Terminology
# ---------------------------------------------------------------------------


def _extensible(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return None


def parse_code_list(code_list: CodeList, raw: Any) -> CodeList:
    payload = validate_payload(CodeListPayload, raw)
    if payload is None:
        return code_list
    _assign(
        code_list,
        payload,
        ("concept_id", "name", "submission_value", "definition", "preferred_term", "synonyms"),
    )
    extensible = _extensible(payload.extensible)
    if extensible is not None:
        code_list.extensible = extensible
    if code_list.href is None and payload.self_href:
        code_list.href = payload.self_href
    if payload.terms is not None:
        code_list.terms = [
            Term(
                concept_id=term.concept_id,
                submission_value=term.submission_value,
                definition=term.definition,
                preferred_term=term.preferred_term,
                synonyms=term.synonyms,
            )
            for term in payload.terms
        ]
        code_list.advance(LoadState.FULL)
    return code_list


def parse_code_list_listing(raw: Any, connection: Any) -> Optional[Dict[str, CodeList]]:
    """Code list stubs from a ``<product>/codelists`` listing."""
    payload = validate_payload(ListingPayload, raw)
    if payload is None or payload.links is None:
        return None
    links = payload.links.link_list("codelists")
    if not links and "codelists" not in payload.links.relations():
        return None
    code_lists: Dict[str, CodeList] = {}
    for link in links:
        code_list = CodeList(href=link.href, preferred_term=link.title, connection=connection)
        code_lists[code_list.concept_id] = code_list
    return code_lists


# ---------------------------------------------------------------------------
# Products and catalog
# ---------------------------------------------------------------------------


def _dependency(link: Link) -> ProductDependency:
    href = link.href or ""
    return ProductDependency(
        id=product_id_from_href(href) if href else None,
        href=link.href,
        title=link.title,
        type=link.type,
    )


def parse_product(product: Product, raw: Any) -> bool:
    """Parse a full product payload into ``product``.

    The product keeps its kind: only the collection matching its dataset
    type is read. A product of unknown kind adopts the kind of the first
    collection found in the payload.

    Returns:
        bool: False when the payload was absent or malformed.
    """
    payload = validate_payload(ProductPayload, raw)
    if payload is None:
        return False
    _assign(
        product,
        payload,
        ("name", "description", "source", "effective_date", "registration_status", "version"),
    )
    label = payload.label or payload.title
    if label is not None:
        product.label = label
    connection = product.connection

    if product.dataset_type is None:
        if payload.data_structures is not None:
            product.adopt_dataset_type(DatasetType.DATA_STRUCTURES)
        elif payload.classes is not None:
            product.adopt_dataset_type(
                DatasetType.DOMAINS if payload.domains is not None else DatasetType.DATASETS
            )
        elif payload.codelists is not None:
            product.adopt_dataset_type(DatasetType.CODELISTS)

    kind_type = product.dataset_type
    if kind_type is DatasetType.DATA_STRUCTURES and payload.data_structures is not None:
        data_structures: Dict[str, DataStructure] = {}
        for structure_payload in payload.data_structures:
            data_structure = DataStructure(
                name=structure_payload.name,
                href=structure_payload.self_href,
                connection=connection,
            )
            parse_data_structure(data_structure, structure_payload)
            data_structures[data_structure.id] = data_structure
        product.data_structures = data_structures
    elif kind_type in (DatasetType.DATASETS, DatasetType.DOMAINS) and payload.classes is not None:
        data_classes: Dict[str, DataClass] = {}
        for class_payload in payload.classes:
            data_class = DataClass(
                name=class_payload.name,
                href=class_payload.self_href,
                connection=connection,
            )
            parse_data_class(data_class, class_payload, payload.domains)
            data_classes[data_class.id] = data_class
        product.data_classes = data_classes
    elif kind_type is DatasetType.CODELISTS and payload.codelists is not None:
        code_lists: Dict[str, CodeList] = {}
        for code_list_payload in payload.codelists:
            code_list = CodeList(
                name=code_list_payload.name,
                href=code_list_payload.self_href,
                connection=connection,
            )
            parse_code_list(code_list, code_list_payload)
            if code_list.href is None and product.href is not None:
                code_list.href = f"{product.href}/codelists/{code_list.concept_id}"
            code_lists[code_list.concept_id] = code_list
        product.codelists = code_lists

    if payload.links is not None:
        dependencies: Dict[str, ProductDependency] = {}
        for name, value in payload.links.relations().items():
            if isinstance(value, dict):
                dependencies[name] = _dependency(Link.model_validate(value))
        if payload.links.parent_product is not None:
            dependencies["parentProduct"] = _dependency(payload.links.parent_product)
        product.dependencies = dependencies
    product.advance(LoadState.FULL)
    return True


def parse_catalog(raw: Any, connection: Any) -> Optional[Dict[str, ProductClass]]:
    """Build product classes, groups and Partial product stubs from
    the ``/mdr/products`` document."""
    payload = validate_payload(ListingPayload, raw)
    if payload is None or payload.links is None:
        return None
    product_classes: Dict[str, ProductClass] = {}
    for class_name, class_raw in payload.links.relations().items():
        class_payload = validate_payload(ListingPayload, class_raw)
        if class_payload is None or class_payload.links is None:
            continue
        product_class = ProductClass(
            name=class_name,
            href=class_payload.links.self_link.href if class_payload.links.self_link else None,
            connection=connection,
        )
        for group_name in class_payload.links.relations():
            group = ProductGroup(name=group_name, connection=connection)
            for link in class_payload.links.link_list(group_name):
                product = Product(
                    href=link.href,
                    label=link.title,
                    type=link.type,
                    connection=connection,
                )
                group.products[product.id] = product
            product_class.product_groups[group_name] = group
        product_classes[class_name] = product_class
    return product_classes


def parse_item_group_listing(raw: Any, dataset_type: DatasetType) -> Optional[Dict[str, Dict[str, Any]]]:
    """``{name: {"name", "label"}}`` from a ``<product>/<datasettype>`` listing."""
    payload = validate_payload(ListingPayload, raw)
    if payload is None or payload.links is None:
        return None
    result: Dict[str, Dict[str, Any]] = {}
    for link in payload.links.link_list(dataset_type.value):
        if not link.href:
            continue
        name = last_segment(link.href)
        result[name] = {"name": name, "label": link.title}
    return result


def parse_into(node: ResourceNode, raw: Any) -> bool:
    """Dispatch a payload to the parser matching the node type."""
    if isinstance(node, Product):
        return parse_product(node, raw)
    if isinstance(node, DataStructure):
        parse_data_structure(node, raw)
    elif isinstance(node, DataClass):
        parse_data_class(node, raw)
    elif isinstance(node, ItemGroup):
        parse_item_group(node, raw)
    elif isinstance(node, Scenario):
        payload = validate_payload(ScenarioPayload, raw)
        if payload is not None:
            parse_scenario(node, payload)
    elif isinstance(node, CodeList):
        parse_code_list(node, raw)
    elif isinstance(node, Item):
        payload = validate_payload(ItemPayload, raw)
        if payload is not None:
            parse_item(node, payload)
    else:
        raise TypeError(f"No parser for {type(node).__name__}")
    return node.load_state is LoadState.FULL
