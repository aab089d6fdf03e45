"""Tests for traffic accounting."""

import json
import threading

import pytest

from cdisc_library_client.monitoring import Traffic, TrafficMonitor, format_byte_count


@pytest.mark.parametrize(
    "count,expected",
    [
        (0, "0 bytes"),
        (50, "0.1 kB"),
        (500, "0.5 kB"),
        (1024, "1.0 kB"),
        (1536, "1.5 kB"),
        (3 * 1024 * 1024, "3.0 MB"),
        (5 * 1024 ** 3, "5.0 GB"),
    ],
)
def test_format_byte_count(count, expected):
    """Test unit selection and the 0.1 display floor."""
    assert format_byte_count(count) == expected


def test_record_exchange_counts_bytes_and_outcomes():
    monitor = TrafficMonitor()
    monitor.record_exchange(incoming=100, outgoing=40, status_code=200)
    monitor.record_exchange(incoming=10, outgoing=40, status_code=404)
    monitor.record_exchange(incoming=10, outgoing=40, status_code=500)

    assert monitor.get_traffic("incoming") == 120
    assert monitor.get_traffic("outgoing") == 120
    assert monitor.get_traffic() == 240
    assert monitor.metrics.total_requests == 3
    assert monitor.metrics.not_found == 1
    assert monitor.metrics.failed_requests == 1
    assert monitor.metrics.last_request_at is not None


def test_preseeded_traffic():
    monitor = TrafficMonitor(Traffic(incoming=2048, outgoing=512))
    monitor.record_exchange(incoming=1024, outgoing=0, status_code=200)
    assert monitor.format_traffic("incoming") == "3.0 kB"


def test_failures_and_cache_counters():
    monitor = TrafficMonitor()
    monitor.record_failure()
    monitor.record_cache_hit()
    monitor.record_cache_miss()
    monitor.record_cache_miss()

    assert monitor.metrics.failed_requests == 1
    assert monitor.metrics.cache_hits == 1
    assert monitor.metrics.cache_misses == 2
    assert monitor.get_traffic() == 0


def test_unknown_traffic_type():
    with pytest.raises(ValueError, match="Unknown traffic type"):
        TrafficMonitor().get_traffic("sideways")


def test_summary_is_json_ready():
    monitor = TrafficMonitor()
    monitor.record_exchange(incoming=10, outgoing=5, status_code=200)
    summary = json.loads(json.dumps(monitor.get_summary()))
    assert summary["traffic"] == {"incoming": 10, "outgoing": 5}
    assert summary["requests"]["total_requests"] == 1


def test_reset():
    monitor = TrafficMonitor()
    monitor.record_exchange(incoming=10, outgoing=5, status_code=200)
    monitor.reset()
    assert monitor.get_traffic() == 0
    assert monitor.metrics.total_requests == 0


def test_concurrent_updates():
    """Test that counters stay consistent under concurrent writers."""
    monitor = TrafficMonitor()

    def worker():
        for _ in range(200):
            monitor.record_exchange(incoming=1, outgoing=1, status_code=200)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert monitor.get_traffic() == 2000
    assert monitor.metrics.total_requests == 1000
