"""Results of the CDISC Library full-text search (``/mdr/search``)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import product_id_from_href
from .schemas import SearchPayload

ITEM_TYPES = ("Analysis Variable", "Data Collection Field", "Class Variable", "SDTM Dataset Variable")
ITEM_GROUP_TYPES = ("Class", "SDTM Dataset", "CDASH Domain", "Data Structure")

_PRODUCT_HREF_RE = re.compile(r"^(/mdr/ct/packages/[^/]+|/mdr/[^/]+/[^/]+)")


def hit_type(raw_type: Optional[str]) -> Optional[str]:
    """Collapse API hit types into the node family they belong to."""
    if raw_type in ITEM_TYPES:
        return "Item"
    if raw_type in ITEM_GROUP_TYPES:
        return "ItemGroup"
    if raw_type == "Code List":
        return "CodeList"
    if raw_type == "Code List Value":
        return "CodedValue"
    return raw_type


def hit_product_id(raw_hit: Dict[str, Any]) -> Optional[str]:
    """Id of the product containing a hit, from its ``parentProduct`` link."""
    hrefs: List[str] = []
    links = raw_hit.get("links")
    if isinstance(links, list):
        for link in links:
            if isinstance(link, dict) and link.get("linkName") == "parentProduct":
                hrefs.append(link.get("href") or "")
    if isinstance(raw_hit.get("href"), str):
        hrefs.append(raw_hit["href"])
    for href in hrefs:
        match = _PRODUCT_HREF_RE.match(href)
        if match is not None:
            return product_id_from_href(match.group(1))
    return None


@dataclass
class SearchResponseHit:
    raw_hit: Dict[str, Any]
    type: Optional[str] = None
    product_id: Optional[str] = None

    @classmethod
    def from_raw(cls, raw_hit: Dict[str, Any]) -> "SearchResponseHit":
        return cls(
            raw_hit=raw_hit,
            type=hit_type(raw_hit.get("type")),
            product_id=hit_product_id(raw_hit),
        )


@dataclass
class SearchResponse:
    """One or more pages of search hits.

    Attributes:
        has_more: More hits are available beyond those loaded.
        total_hits: Total number of hits reported by the API.
        hits: Loaded hits.
    """

    has_more: Optional[bool] = None
    total_hits: Optional[int] = None
    hits: List[SearchResponseHit] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> "SearchResponse":
        payload = SearchPayload.model_validate(raw)
        return cls(
            has_more=payload.has_more,
            total_hits=payload.total_hits,
            hits=[SearchResponseHit.from_raw(hit) for hit in payload.hits or []],
        )

    def add_hits(self, raw_hits: Optional[List[Dict[str, Any]]]) -> None:
        """Append another page of raw hits."""
        self.hits.extend(SearchResponseHit.from_raw(hit) for hit in raw_hits or [])
        if self.total_hits is not None and self.total_hits == len(self.hits):
            self.has_more = False
