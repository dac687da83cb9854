import threading

import pytest

from translation_flow.collaborators import (
    BillingCoordinator,
    BillingGateway,
    ErrorReporter,
    HooksManager,
    InMemoryErrorCollector,
    TranslationHooks,
    estimate_credits,
)
from translation_flow.core.quality_checker import ValidationRecord
from translation_flow.errors import InsufficientCreditsError


class _RecordingGateway(BillingGateway):
    def __init__(self, reserve_error=None):
        self.reserve_error = reserve_error
        self.calls = []

    def reserve(self, shop_id, estimated_credits):
        self.calls.append(("reserve", shop_id, estimated_credits))
        if self.reserve_error is not None:
            raise self.reserve_error
        return "res-1"

    def confirm(self, reservation_id, actual_credits):
        self.calls.append(("confirm", reservation_id, actual_credits))

    def release(self, reservation_id):
        self.calls.append(("release", reservation_id))


@pytest.mark.unit
def test_hooks_manager_defaults_without_hooks():
    manager = HooksManager()
    try:
        assert manager.should_translate({}) is True
        assert manager.validate(object(), {}) == {"success": True}
        assert manager.schedule(lambda: "ran", {}) == "ran"
        assert manager.status()["enabled"] is False
    finally:
        manager.close()


@pytest.mark.unit
def test_hooks_manager_timeout_and_failure_use_defaults():
    release = threading.Event()

    class SlowHooks(TranslationHooks):
        def should_translate(self, context):
            release.wait(2.0)
            return False

        def validate(self, result, context):
            raise RuntimeError("validator down")

    manager = HooksManager(SlowHooks(), timeout=0.05)
    try:
        assert manager.should_translate({}) is True
        assert manager.validate("x", {}) == {"success": True}
        status = manager.status()
        assert status["timeouts"] == 1
        assert status["failures"] == 1
        assert status["hooks"] == "SlowHooks"
    finally:
        release.set()
        manager.close()


@pytest.mark.unit
def test_hooks_manager_validate_coerces_non_mapping():
    class BoolHooks(TranslationHooks):
        def validate(self, result, context):
            return False

    manager = HooksManager(BoolHooks())
    try:
        assert manager.validate("x", {}) == {"success": False}
    finally:
        manager.close()


@pytest.mark.unit
def test_schedule_runs_task_once_even_if_hook_fails_afterwards():
    calls = []

    class FlakyScheduler(TranslationHooks):
        def schedule(self, task, context):
            task()
            raise RuntimeError("queue broke")

    manager = HooksManager(FlakyScheduler())
    try:
        assert manager.schedule(lambda: calls.append(1) or "done", {}) == "done"
        assert calls == [1]
    finally:
        manager.close()


@pytest.mark.unit
def test_schedule_falls_back_and_propagates_task_errors():
    class BrokenScheduler(TranslationHooks):
        def schedule(self, task, context):
            raise RuntimeError("not available")

    class PassThrough(TranslationHooks):
        pass

    manager = HooksManager(BrokenScheduler())
    try:
        assert manager.schedule(lambda: "direct", {}) == "direct"
    finally:
        manager.close()

    def failing_task():
        raise ValueError("task failed")

    manager = HooksManager(PassThrough())
    try:
        with pytest.raises(ValueError):
            manager.schedule(failing_task, {})
        assert manager.status()["failures"] == 0
    finally:
        manager.close()


@pytest.mark.unit
def test_error_reporter_delivers_validation_records():
    collector = InMemoryErrorCollector()
    reporter = ErrorReporter(collector)
    record = ValidationRecord("COMPLETENESS", "LENGTH_TOO_SHORT", "too short", 2, True, {"ratio": 0.1})
    try:
        reporter.report_many([record, {"error_code": "CUSTOM"}], target_lang="fr", shop_id=None)
        reporter.flush()
    finally:
        reporter.close()

    records = collector.records()
    assert len(records) == 2
    assert records[0]["error_type"] == "VALIDATION"
    assert records[0]["error_code"] == "LENGTH_TOO_SHORT"
    assert records[0]["context"] == {"ratio": 0.1, "target_lang": "fr"}
    assert records[1]["error_code"] == "CUSTOM"


@pytest.mark.unit
def test_error_reporter_survives_collector_failures():
    class Broken(InMemoryErrorCollector):
        def collect(self, record):
            raise RuntimeError("sink down")

    reporter = ErrorReporter(Broken())
    reporter.report({"error_code": "X"})
    reporter.flush()
    reporter.close()


@pytest.mark.unit
def test_estimate_credits():
    assert estimate_credits("") == 0
    assert estimate_credits("<p></p>") == 0
    assert estimate_credits("a" * 999) == 1
    assert estimate_credits("<b>" + "a" * 1001 + "</b>") == 2


@pytest.mark.unit
def test_billing_reserve_confirm_release():
    gateway = _RecordingGateway()
    billing = BillingCoordinator(gateway, enabled=True)

    ticket = billing.reserve("Hello", "shop-1")
    billing.confirm(ticket, "Hello")
    billing.release(ticket)
    assert gateway.calls == [("reserve", "shop-1", 1.0), ("confirm", "res-1", 1.0)]

    gateway.calls.clear()
    ticket = billing.reserve("Hello", "shop-1")
    billing.release(ticket)
    assert gateway.calls == [("reserve", "shop-1", 1.0), ("release", "res-1")]


@pytest.mark.unit
def test_billing_not_enforced_cases():
    gateway = _RecordingGateway()
    assert not BillingCoordinator(gateway).should_enforce("shop")
    assert not BillingCoordinator(gateway, enabled=True, bypass=True).should_enforce("shop")
    assert not BillingCoordinator(gateway, enabled=True).should_enforce(None)
    assert not BillingCoordinator(gateway, enabled=True).should_enforce("shop", skip=True)
    assert not BillingCoordinator(None, enabled=True).should_enforce("shop")
    ticket = BillingCoordinator(gateway, enabled=True).reserve("", "shop")
    assert ticket.enforced and ticket.reservation_id is None
    assert gateway.calls == []


@pytest.mark.unit
def test_billing_insufficient_credits_propagates_other_errors_do_not():
    billing = BillingCoordinator(
        _RecordingGateway(InsufficientCreditsError(required=3, available=1)), enabled=True
    )
    with pytest.raises(InsufficientCreditsError) as exc_info:
        billing.reserve("Hello", "shop-1")
    assert exc_info.value.code == "INSUFFICIENT_CREDITS"

    billing = BillingCoordinator(_RecordingGateway(ConnectionError("billing down")), enabled=True)
    ticket = billing.reserve("Hello", "shop-1")
    assert ticket.enforced
    assert ticket.reservation_id is None
