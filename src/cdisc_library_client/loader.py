"""Lazy loading of the resource graph.

The functions here decide whether in-memory state is enough to answer a
request or whether the CDISC Library has to be queried, and splice whatever is
fetched into the existing graph.

Load states follow ``STUB -> PARTIAL -> FULL``:

        * The catalog (``/mdr/products``) yields Partial products.
        * A full product load parses the product document and replaces the
          product's child collection as a whole; the product becomes Full only
          when the parse succeeded.
        * A point fetch of a single item group or code list is spliced into
          the owning collection next to the siblings already resident.

Outcomes of point fetches:
        * the node when found;
        * :data:`~cdisc_library_client.models.NOT_FOUND` (falsy) when the API
          has no such resource (404 or an empty body);
        * ``None`` when the request failed.

Concurrent calls targeting the same missing node are not coalesced: both hit
the network and the last parse wins.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Union

from .formatting import convert_to_format
from .models import (
    NOT_FOUND,
    CodeList,
    DataClass,
    DataStructure,
    Dataset,
    DatasetType,
    Domain,
    Item,
    ItemGroup,
    LoadState,
    Outcome,
    Product,
    ProductClass,
    ProductKind,
    ResourceNode,
    last_segment,
)
from .parser import (
    parse_catalog,
    parse_code_list,
    parse_code_list_listing,
    parse_data_structure,
    parse_into,
    parse_item_group,
    parse_item_group_listing,
    validate_payload,
)
from .schemas import ItemGroupPayload, ListingPayload
from .transport import Connection, FetchStatus

logger = logging.getLogger(__name__)

LISTING_TYPES = ("short", "long")

_CT_TYPE_RE = re.compile(r"/ct/packages/(.*?)-")
_CT_PACKAGE_RE = re.compile(r"/mdr/ct/packages/([^/]+)/")

PointFetchResult = Union[ResourceNode, Outcome, None]


def _check_listing_type(type_: str) -> None:
    if type_ not in LISTING_TYPES:
        raise ValueError(f"Unknown listing type: {type_!r}")


async def load_catalog(connection: Connection) -> Optional[Dict[str, ProductClass]]:
    """Fetch ``/mdr/products`` and build the product class tree.

    Returns:
        Product classes keyed by name, or None when the catalog could not be
        fetched (so that the caller retries next time).
    """
    raw = await connection.api_request("/mdr/products")
    catalog = parse_catalog(raw, connection)
    if catalog is None:
        logger.warning("Could not load the CDISC Library product catalog")
        return None
    logger.debug(f"Loaded catalog with {len(catalog)} product classes")
    return catalog


async def load_node(node: ResourceNode, href: Optional[str] = None) -> bool:
    """Fetch ``node`` (or ``href``) and parse the answer into it.

    Products of the terminology kind are read from the NCI site ODM files when
    the connection is configured to do so.

    Returns:
        bool: True when the node was parsed, False when the request failed or
        the payload was unusable. The node is left unchanged on failure.
    """
    target = href or node.href
    connection = node.connection
    if connection is None or target is None:
        logger.debug(f"Cannot load {type(node).__name__} without locator or connection")
        return False

    fetched = await connection.request_json(target)
    if not fetched.ok:
        logger.debug(f"Load of {target} returned {fetched.status.value}")
        return False

    if (
        isinstance(node, Product)
        and node.kind is ProductKind.CODE_LIST
        and connection.use_nci_site_for_ct
    ):
        from .nci import parse_odm_package

        return parse_odm_package(node, fetched.data)
    return parse_into(node, fetched.data)


# ---------------------------------------------------------------------------
# Item groups
# ---------------------------------------------------------------------------


async def get_item_groups(
    product: Product, type_: str = "long", format: Optional[str] = None
) -> Any:
    """Item groups of ``product``.

    ``long`` loads the full product (once) and returns the resident item
    groups; with a format their items are flattened with an ``itemGroup``
    column. ``short`` returns ``{name: {"name", "label"}}`` read from the
    listing endpoint without changing the product, or from memory when the
    product is already Full.

    Raises:
        ValueError: For an unknown listing type or format.
    """
    _check_listing_type(type_)
    if type_ == "long":
        if not product.fully_loaded:
            await product.load()
        groups = product.get_current_item_groups()
        if format is None:
            return groups
        records: List[Dict[str, Any]] = []
        for group in groups.values():
            records.extend(group.get_formatted_items(None, add_item_group_id=True))
        return convert_to_format(records, format)

    if product.fully_loaded:
        listing = {
            group.name: {"name": group.name, "label": group.label}
            for group in product.get_current_item_groups().values()
        }
    elif product.dataset_type is None or product.href is None or product.connection is None:
        listing = {}
    else:
        raw = await product.connection.api_request(
            f"{product.href}/{product.dataset_type.endpoint}"
        )
        listing = parse_item_group_listing(raw, product.dataset_type) or {}
    if format is None:
        return listing
    return convert_to_format(list(listing.values()), format)


def _resident_item_group(product: Product, name: str) -> Optional[ItemGroup]:
    wanted = name.upper()
    for group in product.get_current_item_groups().values():
        if group.name is not None and group.name.upper() == wanted:
            return group
    return None


def _splice_into_class(
    product: Product, group: ItemGroup, payload: ItemGroupPayload
) -> None:
    """Attach a point-fetched dataset or domain to its parent class.

    The class is created as a Stub when the product does not know it yet.
    """
    parent = payload.links.parent_class if payload.links is not None else None
    if parent is None or not parent.href:
        logger.debug(f"Item group {group.name} has no parent class, not spliced")
        return
    class_id = last_segment(parent.href)
    if product.data_classes is None:
        product.data_classes = {}
    data_class = product.data_classes.get(class_id)
    if data_class is None:
        data_class = DataClass(
            href=parent.href,
            load_state=LoadState.STUB,
            connection=product.connection,
            id=class_id,
            name=class_id,
            label=parent.title,
        )
        product.data_classes[class_id] = data_class
    data_class.item_group_collection(product.dataset_type)[group.id] = group


async def fetch_item_group(product: Product, name: str) -> PointFetchResult:
    """Point fetch ``<product>/<datasettype>/<NAME>`` and splice the result."""
    dataset_type = product.dataset_type
    connection = product.connection
    if dataset_type is None or dataset_type is DatasetType.CODELISTS:
        return NOT_FOUND
    if connection is None or product.href is None:
        return None

    href = f"{product.href}/{dataset_type.endpoint}/{name.upper()}"
    fetched = await connection.request_json(href)
    if fetched.status is FetchStatus.NOT_FOUND:
        logger.debug(f"Item group {name} not found in {product.id}")
        return NOT_FOUND
    if not fetched.ok:
        return None
    payload = validate_payload(ItemGroupPayload, fetched.data)
    if payload is None:
        return None

    if dataset_type is DatasetType.DATA_STRUCTURES:
        data_structure = DataStructure(name=payload.name, href=href, connection=connection)
        parse_data_structure(data_structure, fetched.data)
        if product.data_structures is None:
            product.data_structures = {}
        product.data_structures[data_structure.id] = data_structure
        return data_structure

    group_class = Domain if dataset_type is DatasetType.DOMAINS else Dataset
    group = group_class(name=payload.name, href=href, connection=connection)
    parse_item_group(group, payload)
    _splice_into_class(product, group, payload)
    return group


async def get_item_group(
    product: Product, name: str, format: Optional[str] = None
) -> Any:
    """Item group ``name`` (case-insensitive) of ``product``.

    Resident groups are returned directly. Otherwise a product that is not
    Full is queried for that single group. With ``format`` the group's items
    are returned flattened, including an ``itemGroup`` column.
    """
    group = _resident_item_group(product, name)
    if group is None:
        if product.fully_loaded:
            return NOT_FOUND
        group = await fetch_item_group(product, name)
        if not group:
            return group
    if format is None:
        return group
    return group.get_formatted_items(format, add_item_group_id=True)


# ---------------------------------------------------------------------------
# Code lists
# ---------------------------------------------------------------------------


async def get_code_list_list(
    product: Product, type_: str = "long", format: Optional[str] = None
) -> Any:
    """``conceptId``/``preferredTerm`` (plus ``href`` for ``long``) records."""
    _check_listing_type(type_)
    connection = product.connection
    if (
        not product.fully_loaded
        and not product.codelists
        and product.href is not None
        and connection is not None
    ):
        raw = await connection.api_request(f"{product.href}/codelists")
        listing = parse_code_list_listing(raw, connection)
        if listing is not None:
            product.codelists = listing

    records: List[Dict[str, Any]] = []
    for code_list in (product.codelists or {}).values():
        record = {"conceptId": code_list.concept_id, "preferredTerm": code_list.preferred_term}
        if type_ == "long":
            record["href"] = code_list.href
        records.append(record)
    return convert_to_format(records, format)


async def get_code_list(
    product: Product, concept_id: str, format: Optional[str] = None
) -> Any:
    """Code list ``concept_id`` of a terminology product.

    A code list without terms (a listing stub) is loaded in place; a code
    list unknown to a product that is not Full is fetched and spliced into
    ``codelists``.

    Returns:
        The code list (or its formatted terms), :data:`NOT_FOUND`, or None
        when the request failed.
    """
    code_list = (product.codelists or {}).get(concept_id)
    needs_fetch = (code_list is None and not product.fully_loaded) or (
        code_list is not None and not code_list.terms
    )
    connection = product.connection
    if needs_fetch and connection is not None and product.href is not None:
        href = code_list.href if code_list is not None and code_list.href else (
            f"{product.href}/codelists/{concept_id}"
        )
        fetched = await connection.request_json(href)
        if fetched.ok:
            target = code_list or CodeList(href=href, connection=connection)
            parse_code_list(target, fetched.data)
            if target.concept_id is None:
                logger.warning(f"Code list payload at {href} carries no concept id")
                return None
            if product.codelists is None:
                product.codelists = {}
            product.codelists[target.concept_id or concept_id] = target
            code_list = target
        elif code_list is None:
            return NOT_FOUND if fetched.status is FetchStatus.NOT_FOUND else None

    if code_list is None:
        return NOT_FOUND
    if format is None:
        return code_list
    return code_list.get_formatted_terms(format)


async def load_item_code_list(
    item: Item, ct_version: Optional[str] = None
) -> Optional[CodeList]:
    """Load the code list an item refers to.

    The item's codelist locator points to the version independent root code
    list whose ``versions`` links name every CT package containing it.

    Args:
        item: Item with a ``codelist_href``.
        ct_version: Part of the CT package locator to pick
            (``2019-12-20``); the last listed version when omitted.
    """
    if item.codelist_href is None or item.connection is None:
        return None
    raw = await item.connection.api_request(item.codelist_href)
    payload = validate_payload(ListingPayload, raw)
    versions = payload.links.versions if payload is not None and payload.links else None
    if not versions:
        return None
    if ct_version:
        href = next(
            (version.href for version in versions if version.href and ct_version in version.href),
            None,
        )
    else:
        href = versions[-1].href
    if href is None:
        return None
    code_list = CodeList(href=href, connection=item.connection)
    await code_list.load()
    return code_list


async def load_code_list_versions(code_list: CodeList) -> List[str]:
    """CT package ids (``sdtmct-2019-12-20``...) publishing ``code_list``."""
    if not code_list.href or not code_list.concept_id or code_list.connection is None:
        return []
    match = _CT_TYPE_RE.search(code_list.href)
    if match is None:
        return []
    root_href = f"/mdr/root/ct/{match.group(1)}/codelists/{code_list.concept_id}"
    raw = await code_list.connection.api_request(root_href)
    payload = validate_payload(ListingPayload, raw)
    if payload is None or payload.links is None or not payload.links.versions:
        return []
    result: List[str] = []
    for version in payload.links.versions:
        package = _CT_PACKAGE_RE.search(version.href or "")
        if package is not None:
            result.append(package.group(1))
    return result
