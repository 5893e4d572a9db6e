"""
BillLedger - single authority for bill existence and running totals.

A card's "active bill" is never cached: it is always the query
``bill_status = ACTIVE and card = X``, so the line items stay the only
source of truth for the total.

Transaction boundaries belong to the caller. The ledger only flushes.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from card_billing.config import settings
from card_billing.domain.exceptions import StatementClosedError, StatementNotFoundError
from card_billing.domain.models import BillStatus, LineItem
from card_billing.domain.posting import determine_credit_check_type
from card_billing.domain.settlement import compute_settlement_date
from card_billing.infrastructure.database.models import Card, CardBill, CardBillDetail
from card_billing.infrastructure.database.repositories import BillDetailRepository, BillRepository
from card_billing.infrastructure.observability.metrics import (
    bills_closed_counter,
    bills_opened_counter,
    stale_active_bill_counter,
)

logger = logging.getLogger(__name__)


class BillLedger:
    """Per-card, per-month bill lifecycle: open, post, recompute, close"""

    def __init__(
        self,
        db: Session,
        settlement_day: str | None = None,
        settlement_seq_no: str | None = None,
    ):
        self.db = db
        self.bills = BillRepository(db)
        self.details = BillDetailRepository(db)
        self.settlement_day = settlement_day or settings.default_settlement_day
        self.settlement_seq_no = settlement_seq_no or settings.default_settlement_seq_no

    # Lookups

    def get_active_bills(self, card: Card) -> List[CardBill]:
        return self.bills.find_active_bills(card.id)

    def get_bill_for_month(self, card: Card, charge_month: str) -> Optional[CardBill]:
        bills = self.bills.find_by_card_and_month(card.id, charge_month)
        return bills[-1] if bills else None

    # Creation

    def find_or_create_active(self, card: Card, charge_month: str) -> CardBill:
        """
        ACTIVE bill of the card for charge_month, created on first use.

        An ACTIVE bill left over from another month (clock skew, missed close)
        is not reused and not repaired: a warning is logged and a fresh bill
        is opened for charge_month. The stale bill waits for manual reconciliation.
        """
        active_bills = self.bills.find_active_bills(card.id)
        for bill in active_bills:
            if bill.charge_month == charge_month:
                return bill

        for stale in active_bills:
            stale_active_bill_counter.inc()
            logger.warning(
                "Active bill is not for the processing month",
                extra={
                    "card_no": card.card_no,
                    "bill_id": stale.id,
                    "bill_month": stale.charge_month,
                    "charge_month": charge_month,
                },
            )

        bill, _ = self._create_bill(card, charge_month, trigger="posting")
        return bill

    def create_if_absent(self, card: Card, charge_month: str) -> bool:
        """
        Open the month's bill unless one already exists (in any status).

        Returns True when a bill was created, False when it already existed.
        """
        if self.bills.find_by_card_and_month(card.id, charge_month):
            logger.debug(
                "Bill already exists",
                extra={"card_no": card.card_no, "charge_month": charge_month},
            )
            return False
        _, created = self._create_bill(card, charge_month, trigger="batch")
        return created

    def _create_bill(self, card: Card, charge_month: str, trigger: str) -> Tuple[CardBill, bool]:
        seq_no = self.bills.next_settlement_seq_no(card.id, charge_month, default=self.settlement_seq_no)

        # Savepoint so a lost creation race does not roll back the caller's work
        savepoint = self.db.begin_nested()
        try:
            bill = self.bills.create_bill(
                card_id=card.id,
                charge_month=charge_month,
                settlement_seq_no=seq_no,
                settlement_day=self.settlement_day,
                settlement_date=compute_settlement_date(charge_month, self.settlement_day),
                credit_check_type=determine_credit_check_type(card.card_type),
            )
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            winner = next(
                (b for b in self.bills.find_by_card_and_month(card.id, charge_month) if b.is_active()),
                None,
            )
            if winner is None:
                raise
            logger.info(
                "Concurrent bill creation resolved to existing bill",
                extra={"card_no": card.card_no, "charge_month": charge_month, "bill_id": winner.id},
            )
            return winner, False

        bills_opened_counter.labels(trigger=trigger).inc()
        logger.info(
            "Bill created",
            extra={
                "card_no": card.card_no,
                "bill_id": bill.id,
                "charge_month": charge_month,
                "settlement_seq_no": seq_no,
                "settlement_date": bill.settlement_date,
                "trigger": trigger,
            },
        )
        return bill, True

    # Mutation

    def append_line_item(self, bill: CardBill, item: LineItem) -> CardBillDetail:
        """Insert the item and add its amount to the bill's running total"""
        locked = self._lock(bill.id)
        if not locked.is_active():
            raise StatementClosedError(f"Bill {bill.id} is {locked.bill_status}, cannot post line items")

        detail = self.details.add_detail(locked, item)
        locked.charge_amt = (locked.charge_amt or 0) + item.paid_amt
        self.db.flush()
        return detail

    def recompute_total(self, bill: CardBill) -> int:
        """Re-derive the total strictly from the bill's line items"""
        locked = self._lock(bill.id)
        total = self.details.sum_paid_amt(locked.id)
        if locked.charge_amt != total:
            logger.warning(
                "Bill total drift corrected",
                extra={"bill_id": locked.id, "previous_amt": locked.charge_amt, "recomputed_amt": total},
            )
        locked.charge_amt = total
        self.db.flush()
        return total

    def recompute_total_by_id(self, bill_id: int) -> CardBill:
        bill = self.bills.get_by_id(bill_id)
        if bill is None:
            raise StatementNotFoundError(f"Bill not found: {bill_id}")
        self.recompute_total(bill)
        logger.info("Bill total recomputed", extra={"bill_id": bill.id, "charge_amt": bill.charge_amt})
        return bill

    def close(self, bill: CardBill, closed_at: datetime | None = None) -> bool:
        """
        Freeze the bill: final recompute, status CLOSED, closed-at stamp.

        Returns False without touching anything if the bill is no longer ACTIVE.
        """
        if not bill.is_active():
            return False

        locked = self._lock(bill.id)
        if not locked.is_active():
            return False

        self.recompute_total(locked)
        locked.bill_status = BillStatus.CLOSED.value
        locked.closed_at = closed_at or datetime.now(timezone.utc)
        self.db.flush()

        bills_closed_counter.inc()
        logger.debug(
            "Bill closed",
            extra={"bill_id": bill.id, "charge_month": bill.charge_month, "charge_amt": bill.charge_amt},
        )
        return True

    def _lock(self, bill_id: int) -> CardBill:
        locked = self.bills.lock_bill(bill_id)
        if locked is None:
            raise StatementNotFoundError(f"Bill not found: {bill_id}")
        return locked
