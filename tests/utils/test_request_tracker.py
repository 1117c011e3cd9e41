import logging

from blazedocs.utils.performance import RequestTracker, resolve_slow_request_ms


def test_repeated_single_loads_are_reported_once(caplog):
    logger = logging.getLogger("blazedocs.tests.tracker")
    caplog.set_level(logging.WARNING, logger=logger.name)
    tracker = RequestTracker(logger, n_plus_one_threshold=3)

    for number in range(1, 6):
        tracker.record("fetch_one", [f"products/{number}"], 1.0)

    warnings = [record for record in caplog.records if "Potential N+1" in record.message]
    assert len(warnings) == 1
    assert "fetch_one:products" in warnings[0].message
    assert warnings[0].samples == ["('products/1',)", "('products/2',)", "('products/3',)"]


def test_same_key_and_batched_loads_are_not_reported(caplog):
    logger = logging.getLogger("blazedocs.tests.tracker")
    caplog.set_level(logging.WARNING, logger=logger.name)
    tracker = RequestTracker(logger, n_plus_one_threshold=2)

    for _ in range(4):
        tracker.record("fetch_one", ["products/1"], 1.0)
        tracker.record("fetch_many", ["products/1", "products/2"], 2.0)

    assert not any("Potential N+1" in record.message for record in caplog.records)
    summary = {row["operation"]: row for row in tracker.summary()}
    assert summary["fetch_many"]["count"] == 4
    assert summary["fetch_many"]["average_ms"] == 2.0
    assert tracker.total_requests == 8

    tracker.reset()
    assert tracker.summary() == []


def test_slow_request_threshold_resolution(monkeypatch, caplog):
    assert resolve_slow_request_ms(override=5) == 5
    monkeypatch.setenv("BLAZEDOCS_SLOW_REQUEST_MS", "250")
    assert resolve_slow_request_ms() == 250
    monkeypatch.setenv("BLAZEDOCS_SLOW_REQUEST_MS", "soon")
    assert resolve_slow_request_ms(default=75) == 75
    assert any("Ignoring invalid" in record.message for record in caplog.records)
