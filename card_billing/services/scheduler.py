"""
BillingScheduler - monthly bulk open/close of bills.

On the 1st of each month the open step creates the new month's bill for
every billable card, then the close step freezes the previous month's
ACTIVE bills. Both steps are also exposed for manual replay or backfill
with an explicit month.

Every card (open) and every bill (close) runs in its own committed unit of
work. A failure is logged, counted and skipped, and never aborts the batch
or rolls back another item. Scans are paged by id so the card population is
never loaded at once.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Iterator, List

from sqlalchemy.orm import Session

from card_billing.config import settings
from card_billing.domain.models import BatchResult
from card_billing.infrastructure.database.repositories import BillRepository, CardRepository
from card_billing.infrastructure.database.session import SessionFactory, unit_of_work
from card_billing.infrastructure.observability.logging import log_batch_result
from card_billing.infrastructure.observability.metrics import record_batch
from card_billing.services.ledger import BillLedger
from card_billing.utils.date_utils import format_month, now_in, parse_month, previous_month

logger = logging.getLogger(__name__)

OPEN_STEP = "open"
CLOSE_STEP = "close"


class BillingScheduler:
    """Bulk bill open/close plus an in-process monthly trigger loop"""

    def __init__(
        self,
        session_factory: SessionFactory,
        tz_name: str | None = None,
        page_size: int | None = None,
        open_hour: int | None = None,
        close_hour: int | None = None,
        tick_interval_seconds: int | None = None,
    ):
        self._session_factory = session_factory
        self._tz_name = tz_name or settings.timezone
        self._page_size = page_size or settings.batch_page_size
        self._open_hour = settings.open_step_hour if open_hour is None else open_hour
        self._close_hour = settings.close_step_hour if close_hour is None else close_hour
        self._tick_interval = tick_interval_seconds or settings.scheduler_tick_seconds
        self._last_open_month: str | None = None
        self._last_close_month: str | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # Bulk steps

    def open_bills(self, charge_month: str) -> BatchResult:
        """Create the charge month's bill for every valid card of an active user"""

        def fetch_page(db: Session, after_id: int) -> List[int]:
            return CardRepository(db).fetch_billable_card_ids(after_id, self._page_size)

        def process(db: Session, card_id: int) -> bool:
            card = CardRepository(db).get_by_id(card_id)
            if card is None:
                return False
            return BillLedger(db).create_if_absent(card, charge_month)

        return self._run_batch(OPEN_STEP, charge_month, fetch_page, process)

    def close_bills(self, charge_month: str) -> BatchResult:
        """Close every bill of the charge month that is still ACTIVE"""

        def fetch_page(db: Session, after_id: int) -> List[int]:
            return BillRepository(db).fetch_active_bill_ids_for_month(charge_month, after_id, self._page_size)

        def process(db: Session, bill_id: int) -> bool:
            bill = BillRepository(db).get_by_id(bill_id)
            if bill is None:
                return False
            return BillLedger(db).close(bill)

        return self._run_batch(CLOSE_STEP, charge_month, fetch_page, process)

    def run_open_step(self, now: datetime | None = None) -> BatchResult:
        """Scheduled open: bills for the current month"""
        return self.open_bills(format_month(now or now_in(self._tz_name)))

    def run_close_step(self, now: datetime | None = None) -> BatchResult:
        """Scheduled close: bills of the previous month"""
        return self.close_bills(previous_month(format_month(now or now_in(self._tz_name))))

    def create_bills_manually(self, target_month: str) -> BatchResult:
        parse_month(target_month)
        logger.info("Manual bill creation requested", extra={"charge_month": target_month})
        return self.open_bills(target_month)

    def close_bills_manually(self, target_month: str) -> BatchResult:
        parse_month(target_month)
        logger.info("Manual bill close requested", extra={"charge_month": target_month})
        return self.close_bills(target_month)

    def _run_batch(
        self,
        step: str,
        charge_month: str,
        fetch_page: Callable[[Session, int], List[int]],
        process: Callable[[Session, int], bool],
    ) -> BatchResult:
        start_time = time.monotonic()
        result = BatchResult(step=step, charge_month=charge_month)
        logger.info("Billing batch started", extra={"step": step, "charge_month": charge_month})

        try:
            for item_id in self._iter_ids(fetch_page):
                try:
                    with unit_of_work(self._session_factory) as db:
                        changed = process(db, item_id)
                except Exception as e:
                    result.failure_count += 1
                    result.failed_keys.append(str(item_id))
                    logger.error(
                        f"Billing batch item failed: {e}",
                        extra={"step": step, "charge_month": charge_month, "item_id": item_id},
                        exc_info=True,
                    )
                    continue

                if changed:
                    result.success_count += 1
                else:
                    result.skipped_count += 1
        except Exception:
            # Storage unavailable for the scan itself: report what was done, next tick retries
            logger.exception("Billing batch aborted", extra={"step": step, "charge_month": charge_month})

        duration = time.monotonic() - start_time
        record_batch(result, duration)
        log_batch_result(result, duration * 1000)
        return result

    def _iter_ids(self, fetch_page: Callable[[Session, int], List[int]]) -> Iterator[int]:
        after_id = 0
        while True:
            with unit_of_work(self._session_factory) as db:
                ids = fetch_page(db, after_id)
            if not ids:
                return
            yield from ids
            after_id = ids[-1]

    # Trigger loop

    def tick(self, now: datetime | None = None) -> List[BatchResult]:
        """
        Fire the monthly steps that are due (public for testing).

        Open fires on day 1 from open_hour, close on day 1 from close_hour once
        the open step has run. Each fires at most once per month per process.
        """
        now = now or now_in(self._tz_name)
        month = format_month(now)
        results: List[BatchResult] = []
        if now.day != 1:
            return results

        if now.hour >= self._open_hour and self._last_open_month != month:
            self._last_open_month = month
            results.append(self.run_open_step(now))

        if (
            now.hour >= self._close_hour
            and self._last_open_month == month
            and self._last_close_month != month
        ):
            self._last_close_month = month
            results.append(self.run_close_step(now))

        return results

    def start(self) -> None:
        """Start the trigger loop in a background thread"""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="billing-scheduler", daemon=True)
        self._thread.start()
        logger.info("Billing scheduler started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("Billing scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Billing scheduler tick failed")
            self._stop_event.wait(timeout=self._tick_interval)
