"""Posting of authorized card transactions onto the card's active bill"""

import logging
import time
from datetime import datetime

from sqlalchemy.orm import Session

from card_billing.config import settings
from card_billing.domain.exceptions import CardNotFoundError, InvalidCardStateError
from card_billing.domain.models import CardTransaction
from card_billing.domain.posting import build_line_item
from card_billing.infrastructure.database.models import CardBill
from card_billing.infrastructure.database.repositories import CardRepository
from card_billing.infrastructure.database.session import SessionFactory, unit_of_work
from card_billing.infrastructure.observability.logging import log_posting
from card_billing.infrastructure.observability.metrics import posting_counter
from card_billing.services.ledger import BillLedger
from card_billing.utils.date_utils import format_month, now_in

logger = logging.getLogger(__name__)


class TransactionPoster:
    """Turns a transaction into a line item on the bill of the processing month"""

    def __init__(self, db: Session, ledger: BillLedger | None = None, tz_name: str | None = None):
        self.db = db
        self.cards = CardRepository(db)
        self.ledger = ledger or BillLedger(db)
        self.tz_name = tz_name or settings.timezone

    def post(self, transaction: CardTransaction, now: datetime | None = None) -> CardBill:
        """
        Post a transaction to its card's active bill.

        The charge month is the month in which posting happens, not the
        transaction date, so backdated transactions land on the open bill.

        Raises:
            CardNotFoundError: card_no does not resolve to a card
            InvalidCardStateError: the card is closed
            StatementClosedError: the bill was closed underneath the posting
        """
        start_time = time.time()

        card = self.cards.get_by_card_no(transaction.card_no)
        if card is None:
            raise CardNotFoundError(transaction.card_no)
        if not card.is_valid():
            raise InvalidCardStateError(card.card_no, card.card_status)

        charge_month = format_month(now or now_in(self.tz_name))
        bill = self.ledger.find_or_create_active(card, charge_month)

        item = build_line_item(str(card.id), transaction)
        self.ledger.append_line_item(bill, item)

        duration_ms = (time.time() - start_time) * 1000
        log_posting(transaction.transaction_id, card.card_no, bill.id, charge_month, bill.charge_amt, duration_ms)
        return bill


def post_transaction_safely(session_factory: SessionFactory, transaction: CardTransaction) -> None:
    """
    Post in a unit of work of its own, after the transaction record is committed.

    A posting failure never reaches the transaction-creation flow: it is logged
    and dropped, with no retry queue.
    """
    try:
        with unit_of_work(session_factory) as db:
            TransactionPoster(db).post(transaction)
        posting_counter.labels(outcome="posted").inc()
    except Exception as e:
        posting_counter.labels(outcome="failed").inc()
        logger.error(
            f"Posting to bill failed: {e}",
            extra={"transaction_id": transaction.transaction_id, "card_no": transaction.card_no},
            exc_info=True,
        )
