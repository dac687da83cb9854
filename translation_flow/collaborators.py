"""
External collaborators: translation hooks, error collection and billing.

Each one degrades to a safe default when it is missing or failing; only an
explicit insufficient-credit rejection is allowed to stop a translation.
"""

from __future__ import annotations

from collections import deque
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
import logging
import math
import queue
import re
import threading
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional

from translation_flow.core.quality_checker import ValidationRecord
from translation_flow.errors import InsufficientCreditsError


logger = logging.getLogger("translation_flow.collaborators")

DEFAULT_HOOK_TIMEOUT = 1.0
_TAG_RE = re.compile(r"<[^>]+>")


class TranslationHooks:
    """Base hooks; every method returns the pass-through default."""

    def should_translate(self, context: Mapping[str, Any]) -> bool:
        return True

    def schedule(self, task: Callable[[], Any], context: Mapping[str, Any]) -> Any:
        return task()

    def validate(self, result: Any, context: Mapping[str, Any]) -> Mapping[str, Any]:
        return {"success": True}


class HooksManager:
    def __init__(
        self,
        hooks: TranslationHooks | None = None,
        *,
        timeout: float = DEFAULT_HOOK_TIMEOUT,
        enabled: bool = True,
    ) -> None:
        self.hooks = hooks
        self.timeout = max(0.001, float(timeout))
        self.enabled = bool(enabled) and hooks is not None
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="translation-hooks")
        self._lock = threading.Lock()
        self._timeouts = 0
        self._failures = 0

    def _count(self, timed_out: bool) -> None:
        with self._lock:
            if timed_out:
                self._timeouts += 1
            else:
                self._failures += 1

    def _call_bounded(self, name: str, default: Any, *args: Any) -> Any:
        method = getattr(self.hooks, name, None) if self.enabled else None
        if not callable(method):
            return default
        future = self._executor.submit(method, *args)
        try:
            value = future.result(timeout=self.timeout)
        except FuturesTimeoutError:
            self._count(timed_out=True)
            logger.warning("Hook %s timed out after %.2fs, using default", name, self.timeout)
            return default
        except Exception as exc:
            self._count(timed_out=False)
            logger.warning("Hook %s failed, using default: %s", name, exc)
            return default
        return default if value is None else value

    def should_translate(self, context: Mapping[str, Any]) -> bool:
        return bool(self._call_bounded("should_translate", True, context))

    def validate(self, result: Any, context: Mapping[str, Any]) -> Mapping[str, Any]:
        value = self._call_bounded("validate", {"success": True}, result, context)
        if not isinstance(value, Mapping):
            return {"success": bool(value)}
        return value

    def schedule(self, task: Callable[[], Any], context: Mapping[str, Any]) -> Any:
        """Run ``task`` through the schedule hook, or directly when that fails.

        Unlike ``should_translate`` and ``validate`` this call is not bounded
        by ``timeout``: the hook runs the translation itself, so it takes as
        long as the task does. The task runs at most once even when the hook
        raises after invoking it.
        """
        method = getattr(self.hooks, "schedule", None) if self.enabled else None
        if not callable(method):
            return task()

        state: Dict[str, Any] = {}

        def tracked() -> Any:
            try:
                state["result"] = task()
            except Exception as exc:
                state["error"] = exc
                raise
            return state["result"]

        try:
            return method(tracked, context)
        except Exception as exc:
            if "error" in state:
                raise state["error"]
            self._count(timed_out=False)
            logger.warning("Hook schedule failed, running task directly: %s", exc)
            if "result" in state:
                return state["result"]
            return task()

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "enabled": self.enabled,
                "hooks": type(self.hooks).__name__ if self.hooks is not None else None,
                "timeout": self.timeout,
                "timeouts": self._timeouts,
                "failures": self._failures,
            }

    def close(self) -> None:
        self._executor.shutdown(wait=False)


class ErrorCollector:
    def collect(self, record: Mapping[str, Any]) -> None:
        raise NotImplementedError


class InMemoryErrorCollector(ErrorCollector):
    def __init__(self, max_records: int = 1000) -> None:
        self._records: Deque[Dict[str, Any]] = deque(maxlen=max(1, int(max_records)))
        self._lock = threading.Lock()

    def collect(self, record: Mapping[str, Any]) -> None:
        with self._lock:
            self._records.append(dict(record))

    def records(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


_STOP = object()


class ErrorReporter:
    """Hands records to a collector on a background thread; never blocks callers."""

    def __init__(self, collector: ErrorCollector, *, max_queue: int = 1000) -> None:
        self.collector = collector
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max(1, int(max_queue)))
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()
        self.dropped = 0

    def _ensure_worker(self) -> None:
        if self._thread is not None:
            return
        with self._start_lock:
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._run, name="translation-error-reporter", daemon=True
                )
                self._thread.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.collector.collect(item)
            except Exception as exc:
                logger.warning("Error collector rejected record: %s", exc)
            finally:
                self._queue.task_done()

    def report(self, record: ValidationRecord | Mapping[str, Any], **context: Any) -> None:
        if isinstance(record, ValidationRecord):
            payload: Dict[str, Any] = {
                "error_type": "VALIDATION",
                "error_category": record.category,
                "error_code": record.code,
                "message": record.message,
                "severity": record.severity,
                "retryable": record.retryable,
                "operation": "validate_translation",
                "context": {**dict(record.context), **{k: v for k, v in context.items() if v is not None}},
            }
        else:
            payload = {**dict(record), **context}
        self._ensure_worker()
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            self.dropped += 1
            logger.debug("Error report queue full, dropping %s", payload.get("error_code"))

    def report_many(self, records: Iterable[ValidationRecord | Mapping[str, Any]], **context: Any) -> None:
        for record in records:
            self.report(record, **context)

    def flush(self) -> None:
        if self._thread is not None:
            self._queue.join()

    def close(self) -> None:
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=1.0)
        self._thread = None


class BillingGateway:
    def reserve(self, shop_id: str, estimated_credits: float) -> Optional[str]:
        raise NotImplementedError

    def confirm(self, reservation_id: str, actual_credits: float) -> None:
        raise NotImplementedError

    def release(self, reservation_id: str) -> None:
        raise NotImplementedError


CHARS_PER_CREDIT = 1000


def estimate_credits(text: str | None) -> float:
    """One credit per started thousand visible characters."""
    visible = _TAG_RE.sub("", text or "").strip()
    if not visible:
        return 0
    return float(math.ceil(len(visible) / CHARS_PER_CREDIT))


@dataclass
class BillingTicket:
    enforced: bool
    reservation_id: Optional[str] = None
    estimated_credits: float = 0
    confirmed: bool = False


class BillingCoordinator:
    def __init__(
        self,
        gateway: BillingGateway | None = None,
        *,
        enabled: bool = False,
        bypass: bool = False,
    ) -> None:
        self.gateway = gateway
        self.enabled = bool(enabled)
        self.bypass = bool(bypass)

    def should_enforce(self, shop_id: str | None, *, skip: bool = False) -> bool:
        if not self.enabled or self.bypass or skip or self.gateway is None:
            return False
        return bool(shop_id)

    def reserve(self, text: str, shop_id: str | None, *, skip: bool = False) -> BillingTicket:
        """Reserve credits before any network call.

        ``InsufficientCreditsError`` propagates; any other gateway failure is
        logged and the translation proceeds without a reservation.
        """
        if not self.should_enforce(shop_id, skip=skip):
            return BillingTicket(enforced=False)
        credits = estimate_credits(text)
        ticket = BillingTicket(enforced=True, estimated_credits=credits)
        if credits <= 0:
            return ticket
        try:
            ticket.reservation_id = self.gateway.reserve(str(shop_id), credits)  # type: ignore[union-attr]
        except InsufficientCreditsError as exc:
            logger.warning(
                "Translation rejected for shop %s: insufficient credits (required=%s, available=%s)",
                shop_id,
                exc.required if exc.required is not None else credits,
                exc.available,
            )
            raise
        except Exception as exc:
            logger.error("Credit reservation failed for shop %s, continuing: %s", shop_id, exc)
        return ticket

    def confirm(self, ticket: BillingTicket, source_text: str) -> None:
        if not ticket.reservation_id or ticket.confirmed:
            return
        try:
            self.gateway.confirm(ticket.reservation_id, estimate_credits(source_text))  # type: ignore[union-attr]
            ticket.confirmed = True
        except Exception as exc:
            logger.error("Credit confirmation failed for reservation %s: %s", ticket.reservation_id, exc)

    def release(self, ticket: BillingTicket) -> None:
        if not ticket.reservation_id or ticket.confirmed:
            return
        try:
            self.gateway.release(ticket.reservation_id)  # type: ignore[union-attr]
        except Exception as exc:
            logger.error("Credit release failed for reservation %s: %s", ticket.reservation_id, exc)
