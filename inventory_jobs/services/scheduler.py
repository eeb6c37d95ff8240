"""
SettlementScheduler -- In-process daily settlement trigger.

Contract:
    Wakes on a configurable poll interval and, once per local calendar
    date, runs ``execute_daily_check()``.  On the trigger day that settles
    the previous month via ``ProfitSettlementEngine``.

Architecture: inventory_jobs/services.  Uses inventory_jobs.domain.schedule
    for pure evaluation and inventory_kernel services for execution.

Invariants enforced:
    - All timestamps from the injected Clock, read in the reference zone.
    - Each check runs in its own transaction (``session_scope``).
    - "Already executed" is an expected outcome, not a failure.
    - No failure escapes the background thread; the next day's check is
      the retry.
    - Graceful shutdown: ``stop()`` wakes the loop and joins the thread.
"""

from __future__ import annotations

import threading
from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from inventory_kernel.config import EngineConfig
from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import SettlementInfo
from inventory_kernel.exceptions import SettlementAlreadyExecutedError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.settlement_service import ProfitSettlementEngine

from inventory_jobs.domain.schedule import (
    local_date,
    previous_period,
    should_run_settlement,
)

logger = get_logger("jobs.scheduler")


class SettlementScheduler:
    """Owned handle for the daily settlement timer.

    Contract:
        - ``execute_daily_check()`` performs one synchronous check (public
          for tests and for the CLI).
        - ``start()`` / ``stop()`` / ``is_running`` control a background
          thread.  Each instance owns its own thread and stop signal.

    Non-goals:
        - NOT a distributed scheduler (no leader election).  Two replicas
          may both fire; the settlement uniqueness constraint makes the
          loser a logged no-op.
        - Does NOT retry within a day.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        config: EngineConfig | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_checked: date | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def execute_daily_check(self) -> SettlementInfo | None:
        """Settle the previous month if today is the trigger day.

        Returns the new settlement, or None when nothing was executed
        (not the trigger day, already settled, or failed).
        """
        today = local_date(self._clock.now(), self._config.tzinfo)
        if not should_run_settlement(today, self._config.settlement_trigger_day):
            logger.debug("settlement_check_skipped", extra={"today": today.isoformat()})
            return None

        month, year = previous_period(today)
        logger.info(
            "scheduled_settlement_started",
            extra={"today": today.isoformat(), "month": month, "year": year},
        )

        with LogContext.bind(trigger="scheduler"):
            try:
                with session_scope(self._session_factory) as session:
                    engine = ProfitSettlementEngine(session, self._clock, self._config)
                    result = engine.execute(month, year)
            except SettlementAlreadyExecutedError:
                logger.info(
                    "settlement_already_executed",
                    extra={"month": month, "year": year},
                )
                return None
            except Exception:
                logger.exception(
                    "scheduled_settlement_failed",
                    extra={"month": month, "year": year},
                )
                return None

        logger.info(
            "scheduled_settlement_completed",
            extra={
                "settlement_id": str(result.id),
                "month": month,
                "year": year,
                "total_profit": str(result.total_profit),
            },
        )
        return result

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="settlement-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={
                "poll_seconds": self._config.scheduler_poll_seconds,
                "trigger_day": self._config.settlement_trigger_day,
                "timezone": self._config.timezone,
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler thread to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _tick(self) -> None:
        """Run the daily check the first time a new local date is seen."""
        today = local_date(self._clock.now(), self._config.tzinfo)
        if today == self._last_checked:
            return
        self._last_checked = today
        self.execute_daily_check()

    def _run_loop(self) -> None:
        """Background polling loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self._tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            # Wait for interval or until stopped
            self._stop_event.wait(timeout=self._config.scheduler_poll_seconds)
