"""Root client of the CDISC Library.

:class:`CdiscLibrary` is the entry point of the package. It owns the
:class:`~cdisc_library_client.transport.Connection` shared by the whole graph
and the product catalog (product classes -> product groups -> products), and
composes alias resolution with lazy loading:

        library = CdiscLibrary(api_key="...")
        await library.resolve_alias("SDTM-IG 3.3")
        # ProductPath(product_class_id='data-tabulation', product_group_id='sdtmig',
        #             product_id='sdtmig-3-3')
        adsl_csv = await library.get_item_group("ADSL", "adamig1.1", format="csv")
        await library.get_traffic_stats()   # '12.4 kB'

The catalog is fetched once, on first use. Every read fails softly: transport
problems are logged and surface as ``None``, ``{}`` or
:data:`~cdisc_library_client.models.NOT_FOUND` rather than exceptions.

The client is an async context manager closing its HTTP client on exit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from .aliases import ProductPath
from .formatting import convert_to_format
from .loader import load_catalog
from .matching import MatchMode, coerce_mode
from .models import Item, Product, ProductClass, ProductGroup
from .monitoring import TRAFFIC_TYPES, Traffic, format_byte_count
from .nci import DEFAULT_NCI_PATHS, parse_directory_listing
from .search import SearchResponse
from .transport import (
    DEFAULT_BASE_URL,
    DEFAULT_NCI_SITE_URL,
    DEFAULT_TIMEOUT,
    Connection,
)

logger = logging.getLogger(__name__)

TRAFFIC_FORMATS = ("char", "num")
DETAIL_TYPES = ("short", "long")


class CdiscLibrary:
    """Client for the CDISC Library API.

    Args:
        api_key: CDISC Library API key.
        base_url: API root.
        cache: Optional response cache (``match``/``put``).
        traffic: Optional pre-seeded traffic counters.
        product_classes: Optional pre-built catalog (skips ``/mdr/products``).
        use_nci_site_for_ct: Load terminology packages from the NCI site.
        nci_site_url: Root of the NCI CDISC folder.
        content_encoding: Optional ``Content-Encoding`` request header.
        timeout: Request timeout in seconds.
        transport: Optional ``httpx`` transport, used by tests.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        cache: Any = None,
        traffic: Optional[Traffic] = None,
        product_classes: Optional[Dict[str, ProductClass]] = None,
        use_nci_site_for_ct: bool = False,
        nci_site_url: str = DEFAULT_NCI_SITE_URL,
        content_encoding: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.connection = Connection(
            api_key=api_key,
            base_url=base_url,
            cache=cache,
            traffic=traffic,
            use_nci_site_for_ct=use_nci_site_for_ct,
            nci_site_url=nci_site_url,
            content_encoding=content_encoding,
            timeout=timeout,
            transport=transport,
        )
        self.product_classes = product_classes

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "CdiscLibrary":
        """Create a client from a :class:`~cdisc_library_client.config.ClientConfig`."""
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            cache=config.build_cache(),
            use_nci_site_for_ct=config.use_nci_site_for_ct,
            nci_site_url=config.nci_site_url,
            content_encoding=config.content_encoding,
            timeout=config.timeout,
            **kwargs,
        )

    async def __aenter__(self) -> "CdiscLibrary":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.connection.aclose()

    # ------------------------------------------------------------------
    # Service endpoints
    # ------------------------------------------------------------------

    async def check_connection(self) -> Dict[str, Any]:
        """Probe ``/mdr/lastupdated`` (uncached).

        Returns:
            ``{"statusCode": int, "description": str}``
        """
        response = await self.connection.api_request(
            "/mdr/lastupdated", return_raw=True, no_cache=True
        )
        status_code = response.status_code
        if status_code == -1:
            return {"statusCode": -1, "description": response.description or "Request failed"}
        if status_code == 200:
            try:
                data = response.json()
            except ValueError:
                return {"statusCode": -1, "description": "Check valid Base URL is used"}
            if isinstance(data, dict) and data.get("overall") is not None:
                return {"statusCode": 200, "description": "OK"}
            return {"statusCode": -1, "description": "Could not connect"}
        if status_code == 401:
            return {"statusCode": 401, "description": "Authentication failed"}
        if status_code == 404:
            return {"statusCode": 404, "description": "Resource not found"}
        return {"statusCode": status_code, "description": "Unknown"}

    async def get_last_updated(self) -> Dict[str, Any]:
        """Last update dates of the library content (never cached)."""
        result = await self.connection.api_request("/mdr/lastupdated", no_cache=True)
        if not isinstance(result, dict):
            return {}
        result.pop("_links", None)
        return result

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def get_product_classes(self) -> Dict[str, ProductClass]:
        """Product classes, fetching the catalog on first use."""
        if self.product_classes is None:
            self.product_classes = await load_catalog(self.connection)
        return self.product_classes or {}

    async def get_product_class_list(self) -> List[str]:
        return list(await self.get_product_classes())

    async def get_product_group_list(self) -> List[str]:
        result: List[str] = []
        for product_class in (await self.get_product_classes()).values():
            result.extend(product_class.get_product_group_list())
        return result

    async def get_product_group(self, name: str) -> Optional[ProductGroup]:
        for product_class in (await self.get_product_classes()).values():
            group = product_class.get_product_group(name)
            if group is not None:
                return group
        return None

    async def get_product_list(self, format: Optional[str] = None) -> Any:
        """Ids of every product in the catalog."""
        result: List[str] = []
        for product_class in (await self.get_product_classes()).values():
            result.extend(product_class.get_product_list())
        return convert_to_format(result, format)

    async def resolve_alias(self, alias: str) -> Optional[ProductPath]:
        """Resolve a loose product reference to its catalog path.

        Example:
            ``"adamig1.1"`` -> ``ProductPath("data-analysis", "adam", "adamig-1-1")``
        """
        for class_id, product_class in (await self.get_product_classes()).items():
            found = product_class.get_product_id_by_alias(alias)
            if found is not None:
                group_id, product_id = found
                return ProductPath(class_id, group_id, product_id)
        logger.debug(f"No product matches alias {alias!r}")
        return None

    def _product_at(self, path: ProductPath) -> Product:
        product_class = self.product_classes[path.product_class_id]
        return product_class.product_groups[path.product_group_id].products[path.product_id]

    async def get_product(self, alias: str, shallow: bool = False) -> Optional[Product]:
        """Product matching ``alias``.

        Args:
            alias: Loose product reference (``sdtmig3-3``, ``SDTM 1.7``...).
            shallow: Return the catalog entry without fetching details.

        Returns:
            The product, or None when the alias does not resolve. A product
            whose detail fetch failed is returned as it was (not Full).
        """
        path = await self.resolve_alias(alias)
        if path is None:
            return None
        product = self._product_at(path)
        if not shallow and not product.fully_loaded:
            await product.load()
        return product

    async def get_item_group(
        self, name: str, product_alias: str, format: Optional[str] = None
    ) -> Any:
        """Dataset, domain or data structure ``name`` of a product.

        Returns:
            The item group (or its formatted items), ``NOT_FOUND`` when the
            product has no such group, None when the product alias does not
            resolve or the request failed.
        """
        path = await self.resolve_alias(product_alias)
        if path is None:
            return None
        return await self._product_at(path).get_item_group(name, format=format)

    async def get_item_groups(
        self, product_alias: str, type_: str = "long", format: Optional[str] = None
    ) -> Any:
        """Item groups of a product; ``short`` lists names and labels only."""
        path = await self.resolve_alias(product_alias)
        if path is None:
            return None
        return await self._product_at(path).get_item_groups(type_=type_, format=format)

    def _products(self) -> Iterable[Product]:
        for product_class in (self.product_classes or {}).values():
            for group in product_class.product_groups.values():
                yield from group.products.values()

    def find_matching_items(
        self, name: str, mode: str = "full", first_only: bool = False
    ) -> List[Item]:
        """Items of every product already loaded whose name matches ``name``.

        No request is made.

        Raises:
            ValueError: For an unknown matching mode.
        """
        match_mode: MatchMode = coerce_mode(mode)
        result: List[Item] = []
        for product in self._products():
            result.extend(product.find_matching_items(name, match_mode, first_only))
            if first_only and result:
                break
        return result

    async def get_product_details(self, type_: str = "short", format: str = "json") -> Any:
        """Flat records for every product of the catalog.

        ``short`` keeps id and label, ``long`` every scalar attribute.
        """
        if type_ not in DETAIL_TYPES:
            raise ValueError(f"Unknown detail type: {type_!r}")
        await self.get_product_classes()
        records: List[Dict[str, Any]] = []
        for product in self._products():
            if type_ == "short":
                records.append({"id": product.id, "label": product.label})
            else:
                records.append(product.to_record())
        return convert_to_format(records, format)

    def get_traffic_stats(self, type_: str = "all", format: str = "char") -> Any:
        """Bytes exchanged with the API by this client.

        Args:
            type_: ``all``, ``incoming`` or ``outgoing``.
            format: ``char`` for a human readable size, ``num`` for bytes.

        Raises:
            ValueError: For an unknown type or format.
        """
        if type_ not in TRAFFIC_TYPES:
            raise ValueError(f"Unknown traffic type: {type_!r}")
        if format not in TRAFFIC_FORMATS:
            raise ValueError(f"Unknown traffic format: {format!r}")
        traffic = self.connection.monitor.get_traffic(type_)
        if format == "num":
            return traffic
        return format_byte_count(traffic)

    def reset(self) -> None:
        """Drop the catalog; the next call fetches everything again."""
        self.product_classes = None

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        scopes: Optional[Dict[str, str]] = None,
        highlights: Optional[List[str]] = None,
        start: int = 0,
        page_size: int = 250,
        load_all: bool = True,
    ) -> SearchResponse:
        """Full-text search.

        Args:
            query: Search query.
            scopes: Scope filters, e.g. ``{"product": "ADaMIG v1.1"}``.
            highlights: Terms to highlight.
            start: Offset of the first hit.
            page_size: Hits per page.
            load_all: Fetch the remaining hits in a second request (default).

        Raises:
            RuntimeError: When the search request fails.
        """
        params: Dict[str, Any] = {"q": query, **(scopes or {})}
        if highlights:
            params["highlights"] = highlights
        params["start"] = start
        params["pageSize"] = page_size

        raw = await self.connection.api_request(f"/mdr/search?{httpx.QueryParams(params)}")
        if not raw or not isinstance(raw, dict):
            raise RuntimeError("Search request failed.")
        try:
            result = SearchResponse.from_raw(raw)
        except ValidationError as e:
            raise RuntimeError("Search request failed.") from e

        if (
            load_all
            and result.has_more
            and result.total_hits is not None
            and result.total_hits > start + page_size
        ):
            params["start"] = start + page_size
            params["pageSize"] = result.total_hits - params["start"]
            more = await self.connection.api_request(
                f"/mdr/search?{httpx.QueryParams(params)}"
            )
            if isinstance(more, dict):
                result.add_hits(more.get("hits"))
        return result

    async def get_scope_list(self) -> Any:
        """Names of the available search scopes."""
        raw = await self.connection.api_request("/mdr/search/scopes")
        return raw.get("scopes") if isinstance(raw, dict) else None

    async def get_scope(self, name: str) -> Any:
        """Values of one search scope."""
        raw = await self.connection.api_request(f"/mdr/search/scopes/{name}")
        return raw.get("values") if isinstance(raw, dict) else None

    # ------------------------------------------------------------------
    # NCI site
    # ------------------------------------------------------------------

    async def get_ct_from_nci_site(
        self, paths: Optional[Iterable[str]] = None
    ) -> Dict[str, Product]:
        """Build the terminology catalog from NCI archive folder listings.

        The products land in ``terminology/packages``; other product classes
        already loaded are kept. Packages already resident keep their
        loaded state.

        Raises:
            ValueError: When the client was not created with
                ``use_nci_site_for_ct=True``.
        """
        if not self.connection.use_nci_site_for_ct:
            raise ValueError("get_ct_from_nci_site requires use_nci_site_for_ct=True")

        folders = list(paths or DEFAULT_NCI_PATHS)
        pages = await asyncio.gather(
            *(
                self.connection.api_request("/nciSite/" + folder.lstrip("/"))
                for folder in folders
            )
        )
        result: Dict[str, Product] = {}
        for folder, page in zip(folders, pages):
            result.update(parse_directory_listing(page, folder, self.connection))

        if self.product_classes is None:
            self.product_classes = {}
        terminology = self.product_classes.get("terminology")
        if terminology is None:
            terminology = ProductClass(name="terminology", connection=self.connection)
            self.product_classes["terminology"] = terminology
        packages = terminology.product_groups.get("packages")
        if packages is None:
            packages = ProductGroup(name="packages", connection=self.connection)
            terminology.product_groups["packages"] = packages
        resident = packages.products
        packages.products = {
            product_id: resident.get(product_id, product) for product_id, product in result.items()
        }
        logger.debug(f"Loaded {len(result)} terminology packages from the NCI site")
        return packages.products

