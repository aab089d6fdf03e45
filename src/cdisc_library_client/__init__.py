"""CDISC Library Client
======================

Asynchronous client for the **CDISC Library** metadata API exposing standards
(SDTM, SEND, CDASH, ADaM) and controlled terminology as a navigable, lazily
loaded object graph.

Key capabilities
----------------
- Catalog of product classes, product groups and products, fetched once.
- Loose product aliases (``SDTM-IG 3.2``, ``adamig1.1``) resolved to canonical
  ids through :func:`~cdisc_library_client.aliases.resolve_alias`.
- Progressive loading: listings, full product loads and point fetches of a
  single dataset, domain, data structure or code list, merged into the graph
  without losing siblings.
- Variable name templates (``TRxxPGy`` matches ``TR01PG12``) through
  :func:`~cdisc_library_client.matching.match_item`.
- JSON / CSV output of flattened records.
- Optional in-memory or Redis-backed response caching, traffic accounting.
- Terminology from the NCI EVS site as an alternate source.

Design principles
-----------------
1. **Fail soft** – network problems and malformed payloads are logged and
    turn into empty results; only programmer errors (unknown matching mode,
    unknown format) raise.
2. **Load state only moves forward** – Stub, Partial, Full.
3. **One connection per client** – every node shares the same
    :class:`~cdisc_library_client.transport.Connection` (HTTP client, cache,
    traffic counters).

Minimal quick start
-------------------
>>> import asyncio
>>> from cdisc_library_client import CdiscLibrary
>>> async def main():
...     async with CdiscLibrary(api_key="...") as library:
...         dm = await library.get_item_group("DM", "sdtmig3-3")
...         return dm.get_name_list()[:3]
>>> asyncio.run(main())  # doctest: +SKIP
['STUDYID', 'DOMAIN', 'USUBJID']

Public surface
--------------
Only a curated subset is exported at the package level; node types and
helpers can be imported from their modules.
"""

__version__ = "0.1.0"

from .aliases import ProductPath, resolve_alias
from .client import CdiscLibrary
from .config import ClientConfig
from .matching import MatchMode, match_item
from .models import NOT_FOUND, LoadState

__all__ = [
    "CdiscLibrary",
    "ClientConfig",
    "LoadState",
    "MatchMode",
    "NOT_FOUND",
    "ProductPath",
    "match_item",
    "resolve_alias",
]
