"""Traffic and request accounting for a client session.

Every node of one client graph shares a single :class:`TrafficMonitor`
through the connection, so the numbers reported by
:meth:`CdiscLibrary.get_traffic_stats` cover all requests issued while
navigating the graph.

Collected values:
        * Byte counters (incoming / outgoing) of completed network exchanges.
        * Request outcomes (total, failed, not found).
        * Response cache hits and misses.

Counters can be pre-seeded with a :class:`Traffic` instance, e.g. to carry
totals over from an earlier session::

        from cdisc_library_client.monitoring import Traffic, TrafficMonitor

        monitor = TrafficMonitor(Traffic(incoming=2048, outgoing=512))
        monitor.record_exchange(incoming=1024, outgoing=256, status_code=200)
        monitor.format_traffic("incoming")  # '3.0 kB'
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

BYTE_UNITS = (" kB", " MB", " GB", " TB", " PB", " EB", " ZB", " YB")
TRAFFIC_TYPES = ("all", "incoming", "outgoing")


@dataclass
class Traffic:
    """Raw byte counters."""

    incoming: int = 0
    outgoing: int = 0


@dataclass
class RequestMetrics:
    """Aggregate request outcome counters.

    Attributes:
        total_requests: Network exchanges attempted (cache hits excluded).
        failed_requests: Exchanges ending in a network error or non 2xx/404 status.
        not_found: Exchanges answered with 404.
        cache_hits: Responses served by the response cache.
        cache_misses: Cache lookups that fell through to the network.
        last_request_at: ISO timestamp of the latest network exchange.
    """

    total_requests: int = 0
    failed_requests: int = 0
    not_found: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    last_request_at: Optional[str] = None


def format_byte_count(count: float) -> str:
    """Render a byte count with a 1024 based unit.

    The value is divided by 1024 at least once, so small amounts are
    expressed in kB. Non-zero values never display below ``0.1``.

    Example:
        >>> format_byte_count(0)
        '0 bytes'
        >>> format_byte_count(50)
        '0.1 kB'
        >>> format_byte_count(3 * 1024 * 1024)
        '3.0 MB'
    """
    if count == 0:
        return "0 bytes"
    value = float(count)
    index = -1
    while True:
        value /= 1024
        index += 1
        if value <= 1024 or index == len(BYTE_UNITS) - 1:
            break
    return f"{max(value, 0.1):.1f}{BYTE_UNITS[index]}"


class TrafficMonitor:
    """Thread-safe accumulator for traffic and request metrics."""

    def __init__(self, traffic: Optional[Traffic] = None) -> None:
        self._lock = threading.RLock()
        self.traffic = traffic if traffic is not None else Traffic()
        self.metrics = RequestMetrics()

    def record_exchange(self, incoming: int, outgoing: int, status_code: int) -> None:
        """Record a completed network exchange.

        Args:
            incoming: Bytes received (status line, headers and body).
            outgoing: Bytes sent (request line, headers and body).
            status_code: HTTP status of the response.
        """
        with self._lock:
            self.traffic.incoming += incoming
            self.traffic.outgoing += outgoing
            self.metrics.total_requests += 1
            self.metrics.last_request_at = datetime.now().isoformat()
            if status_code == 404:
                self.metrics.not_found += 1
            elif not 200 <= status_code < 300:
                self.metrics.failed_requests += 1

    def record_failure(self) -> None:
        """Record an exchange that never produced a response."""
        with self._lock:
            self.metrics.total_requests += 1
            self.metrics.failed_requests += 1
            self.metrics.last_request_at = datetime.now().isoformat()

    def record_cache_hit(self) -> None:
        with self._lock:
            self.metrics.cache_hits += 1

    def record_cache_miss(self) -> None:
        with self._lock:
            self.metrics.cache_misses += 1

    def get_traffic(self, type: str = "all") -> int:
        """Return raw byte count for ``all``, ``incoming`` or ``outgoing``.

        Raises:
            ValueError: For an unknown traffic type.
        """
        with self._lock:
            if type == "incoming":
                return self.traffic.incoming
            if type == "outgoing":
                return self.traffic.outgoing
            if type == "all":
                return self.traffic.incoming + self.traffic.outgoing
        raise ValueError(f"Unknown traffic type: {type!r}")

    def format_traffic(self, type: str = "all") -> str:
        return format_byte_count(self.get_traffic(type))

    def get_summary(self) -> Dict[str, Any]:
        """Primitive-only snapshot suitable for JSON encoding."""
        with self._lock:
            return {
                "traffic": asdict(self.traffic),
                "requests": asdict(self.metrics),
            }

    def reset(self) -> None:
        """Zero every counter (traffic included)."""
        with self._lock:
            self.traffic.incoming = 0
            self.traffic.outgoing = 0
            self.metrics = RequestMetrics()
