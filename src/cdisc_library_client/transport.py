"""HTTP transport shared by every node of a client graph.

:class:`Connection` owns the ``httpx.AsyncClient``, the API key, the optional
response cache and the traffic monitor. It is created once per
:class:`~cdisc_library_client.client.CdiscLibrary` and handed by reference to
each node parsed from the API, so request accounting and cache sharing stay
consistent across the whole graph.

Responsibilities:
        * Build the request (base URL, ``Accept``, ``api-key`` header, NCI site
          redirection for controlled terminology when enabled).
        * Consult the response cache before dispatch and populate it after a
          ``200`` answer.
        * Count approximate wire bytes of every network exchange.
        * Fail soft: network errors become responses with ``status_code == -1``
          and are logged, never raised.

Two read helpers are exposed on top of :meth:`Connection.fetch`:

:meth:`Connection.api_request`
    Decoded body on ``200``, ``{}`` otherwise (raw response on request).
:meth:`Connection.request_json`
    Classified outcome (:class:`FetchStatus`) used by the loader to tell a
    missing resource from a failed call.
"""

from __future__ import annotations

import inspect
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple, Union

import httpx

from .monitoring import Traffic, TrafficMonitor

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from .cache import ResponseCache

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://library.cdisc.org/api"
DEFAULT_NCI_SITE_URL = "https://evs.nci.nih.gov/ftp1/CDISC"
DEFAULT_TIMEOUT = 30.0

BINARY_CONTENT_TYPES = ("application/vnd.ms-excel",)

NCI_SITE_FOLDERS: Dict[str, str] = {
    "adam": "/ADaM/Archive/",
    "protocol": "/Protocol/Archive/",
    "glossary": "/Glossary/Archive/",
    "send": "/SEND/Archive/",
    "sdtm": "/SDTM/Archive/",
    "qs": "/SDTM/Archive/",
    "qs-ft": "/SDTM/Archive/",
    "qrs": "/SDTM/Archive/",
    "coa": "/SDTM/Archive/",
    "cdash": "/SDTM/Archive/",
    "define-xml": "/Define-XML/Archive/",
}

NCI_SITE_PREFIXES: Dict[str, str] = {
    "adam": "ADaM Terminology",
    "protocol": "Protocol Terminology",
    "glossary": "CDISC Glossary Terminology",
    "send": "SEND Terminology",
    "sdtm": "SDTM Terminology",
    "qs": "QS Terminology",
    "qs-ft": "QS-FT Terminology",
    "qrs": "QRS Terminology",
    "coa": "COA Terminology",
    "cdash": "CDASH Terminology",
    "define-xml": "Define-XML Terminology",
}

CT_PACKAGE_ENDPOINT_RE = re.compile(
    r"/mdr/ct/packages/(adam|cdash|define-xml|glossary|coa|protocol|qrs|qs|qs-ft|sdtm|send)"
    r"ct-(\d{4}-\d{2}-\d{2})$"
)
NCI_SITE_PREFIX = "/nciSite/"


@dataclass(frozen=True)
class RequestDescriptor:
    """Identity of a request: what the cache keys on.

    Attributes:
        url: Absolute URL.
        headers: Sorted ``(name, value)`` pairs.
        binary: True when the body must be kept as bytes.
    """

    url: str
    headers: Tuple[Tuple[str, str], ...] = ()
    binary: bool = False

    def header_dict(self) -> Dict[str, str]:
        return dict(self.headers)


@dataclass
class ApiResponse:
    """Transport independent response record (picklable for caching)."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Union[str, bytes] = ""
    description: Optional[str] = None

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def is_json(self) -> bool:
        return "json" in self.content_type

    def json(self) -> Any:
        """Decode the body as JSON (raises ``ValueError`` on bad content)."""
        return json.loads(self.body)


class FetchStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class Fetched:
    """Classified outcome of :meth:`Connection.request_json`."""

    status: FetchStatus
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK


async def _resolve(value: Any) -> Any:
    """Await ``value`` if the cache implementation returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


def _header_size(headers: httpx.Headers) -> int:
    return sum(len(name) + len(value) + 4 for name, value in headers.raw)


def _request_size(request: httpx.Request) -> int:
    request_line = f"{request.method} {request.url.raw_path.decode('ascii', 'replace')} HTTP/1.1\r\n"
    return len(request_line) + _header_size(request.headers) + 2 + len(request.content)


def _response_size(response: httpx.Response) -> int:
    status_line = f"HTTP/1.1 {response.status_code} {response.reason_phrase}\r\n"
    return len(status_line) + _header_size(response.headers) + 2 + len(response.content)


class Connection:
    """Authenticated, cache-aware access to the CDISC Library API.

    Args:
        api_key: CDISC Library API key, sent as the ``api-key`` header.
        base_url: API root, e.g. ``https://library.cdisc.org/api``.
        cache: Optional object implementing ``match``/``put``
            (see :class:`~cdisc_library_client.cache.ResponseCache`).
        traffic: Optional pre-seeded byte counters.
        use_nci_site_for_ct: Redirect CT package requests to the NCI site.
        nci_site_url: Root of the NCI EVS CDISC folder.
        content_encoding: Value for a ``Content-Encoding`` request header.
        timeout: Request timeout in seconds.
        transport: Optional ``httpx`` transport (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        cache: Optional["ResponseCache"] = None,
        traffic: Optional[Traffic] = None,
        use_nci_site_for_ct: bool = False,
        nci_site_url: str = DEFAULT_NCI_SITE_URL,
        content_encoding: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.monitor = TrafficMonitor(traffic)
        self.use_nci_site_for_ct = use_nci_site_for_ct
        self.nci_site_url = nci_site_url.rstrip("/")
        self.content_encoding = content_encoding
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def traffic(self) -> Traffic:
        return self.monitor.traffic

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request(
        self, endpoint: str, headers: Optional[Dict[str, str]] = None
    ) -> RequestDescriptor:
        """Translate an API endpoint into a concrete request.

        Args:
            endpoint: Path relative to the API root (``/mdr/products``), or a
                ``/nciSite/...`` page when NCI mode is enabled.
            headers: Extra headers overriding the defaults.
        """
        extra = dict(headers or {})
        binary = False
        package = CT_PACKAGE_ENDPOINT_RE.search(endpoint) if self.use_nci_site_for_ct else None
        if package is not None:
            ct_type, date = package.groups()
            url = (
                f"{self.nci_site_url}{NCI_SITE_FOLDERS[ct_type]}"
                f"{NCI_SITE_PREFIXES[ct_type]} {date}.odm.xml"
            )
            merged = {"Accept": "text/xml", **extra}
        elif self.use_nci_site_for_ct and endpoint.startswith(NCI_SITE_PREFIX):
            url = self.nci_site_url + endpoint[len(NCI_SITE_PREFIX) - 1 :]
            merged = {"Accept": "text/html", **extra}
        else:
            url = self.base_url + endpoint
            merged = {"Accept": "application/json", **extra}
            if self.api_key:
                merged["api-key"] = self.api_key
            binary = merged.get("Accept") in BINARY_CONTENT_TYPES
        if self.content_encoding is not None:
            merged["Content-Encoding"] = self.content_encoding
        return RequestDescriptor(
            url=url, headers=tuple(sorted(merged.items())), binary=binary
        )

    async def _send(self, request: RequestDescriptor) -> ApiResponse:
        try:
            response = await self._get_client().get(
                request.url, headers=request.header_dict()
            )
        except httpx.HTTPError as e:
            logger.warning(f"Request to {request.url} failed: {e}")
            self.monitor.record_failure()
            return ApiResponse(status_code=-1, description="Request failed")

        self.monitor.record_exchange(
            incoming=_response_size(response),
            outgoing=_request_size(response.request),
            status_code=response.status_code,
        )
        logger.debug(f"GET {request.url} -> {response.status_code}")
        return ApiResponse(
            status_code=response.status_code,
            headers={name.lower(): value for name, value in response.headers.items()},
            body=response.content if request.binary else response.text,
            description=response.reason_phrase,
        )

    async def fetch(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        no_cache: bool = False,
    ) -> ApiResponse:
        """Issue one GET, going through the response cache when configured."""
        request = self.build_request(endpoint, headers)
        cache = None if no_cache else self.cache
        if cache is not None:
            cached = await _resolve(cache.match(request))
            if cached is not None:
                self.monitor.record_cache_hit()
                logger.debug(f"Cache hit for {request.url}")
                return cached
            self.monitor.record_cache_miss()

        response = await self._send(request)
        if cache is not None and response.status_code == 200:
            await _resolve(cache.put(request, response))
        return response

    async def api_request(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        return_raw: bool = False,
        no_cache: bool = False,
    ) -> Any:
        """Fetch ``endpoint`` and return its decoded body.

        Args:
            endpoint: API path.
            headers: Extra request headers.
            return_raw: Return the :class:`ApiResponse` untouched.
            no_cache: Bypass the response cache.

        Returns:
            Parsed JSON (or text for other content types) when the status is
            200, ``{}`` otherwise.
        """
        response = await self.fetch(endpoint, headers=headers, no_cache=no_cache)
        if return_raw:
            return response
        if response.status_code != 200:
            if response.status_code > 0:
                logger.warning(
                    f"Request for {endpoint} failed with code: {response.status_code}"
                )
            return {}
        if response.is_json:
            try:
                return response.json()
            except ValueError as e:
                logger.warning(f"Could not decode response for {endpoint}: {e}")
                return {}
        return response.body

    async def request_json(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        no_cache: bool = False,
    ) -> Fetched:
        """Fetch ``endpoint`` and classify the outcome.

        Returns:
            Fetched: ``OK`` with the decoded body, ``NOT_FOUND`` for 404 or an
            empty body, ``FAILED`` for every other problem.
        """
        response = await self.fetch(endpoint, headers=headers, no_cache=no_cache)
        if response.status_code == 404:
            return Fetched(FetchStatus.NOT_FOUND)
        if response.status_code != 200:
            if response.status_code > 0:
                logger.warning(
                    f"Request for {endpoint} failed with code: {response.status_code}"
                )
            return Fetched(FetchStatus.FAILED)
        if not response.body:
            return Fetched(FetchStatus.NOT_FOUND)
        if not response.is_json:
            return Fetched(FetchStatus.OK, response.body)
        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Could not decode response for {endpoint}: {e}")
            return Fetched(FetchStatus.FAILED)
        if not data:
            return Fetched(FetchStatus.NOT_FOUND)
        return Fetched(FetchStatus.OK, data)
