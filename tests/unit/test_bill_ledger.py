"""Unit tests for the bill ledger"""

import logging
import pytest
from datetime import datetime, timezone
from unittest.mock import patch

from sqlalchemy.dialects import postgresql

from card_billing.domain.exceptions import StatementClosedError, StatementNotFoundError
from card_billing.domain.models import BillStatus, CardType, LineItem
from card_billing.infrastructure.database.models import CardBill
from card_billing.infrastructure.database.repositories import BillDetailRepository, BillRepository
from card_billing.services.ledger import BillLedger


def _item(card, amount: int, paid_date: str = "20240603", paid_time: str = "120000") -> LineItem:
    return LineItem(
        card_id=str(card.id),
        paid_date=paid_date,
        paid_time=paid_time,
        paid_amt=amount,
        merchant_name_masked="스타벅**",
    )


def _bills_of(db, card):
    return db.query(CardBill).filter(CardBill.card_id == card.id).order_by(CardBill.id).all()


def test_find_or_create_active_opens_bill(db, make_card):
    """First use opens an ACTIVE bill with the default settlement parameters"""
    card = make_card()
    ledger = BillLedger(db)

    bill = ledger.find_or_create_active(card, "202406")
    db.commit()

    assert bill.bill_status == BillStatus.ACTIVE.value
    assert bill.charge_month == "202406"
    assert bill.settlement_seq_no == "0001"
    assert bill.settlement_day == "25"
    assert bill.settlement_date == "20240725"
    assert bill.credit_check_type == "01"
    assert bill.charge_amt == 0


def test_find_or_create_active_is_idempotent(db, make_card):
    card = make_card()
    ledger = BillLedger(db)

    first = ledger.find_or_create_active(card, "202406")
    second = ledger.find_or_create_active(card, "202406")
    db.commit()

    assert first.id == second.id
    assert len(_bills_of(db, card)) == 1


def test_check_card_bill_is_classified_as_check(db, make_card):
    card = make_card(card_type=CardType.DEBIT)

    bill = BillLedger(db).find_or_create_active(card, "202406")

    assert bill.credit_check_type == "02"


def test_stale_active_bill_is_left_alone(db, make_card, caplog):
    """An ACTIVE bill from an earlier month is not reused; a new one is opened"""
    card = make_card()
    ledger = BillLedger(db)
    stale = ledger.find_or_create_active(card, "202405")

    with caplog.at_level(logging.WARNING, logger="card_billing.services.ledger"):
        current = ledger.find_or_create_active(card, "202406")
    db.commit()

    assert current.id != stale.id
    assert current.charge_month == "202406"
    assert stale.bill_status == BillStatus.ACTIVE.value
    assert any(getattr(r, "bill_id", None) == stale.id for r in caplog.records)
    assert [b.charge_month for b in ledger.get_active_bills(card)] == ["202406", "202405"]


def test_append_line_item_keeps_total_equal_to_details(db, make_card):
    card = make_card()
    ledger = BillLedger(db)
    bill = ledger.find_or_create_active(card, "202406")

    ledger.append_line_item(bill, _item(card, 4500))
    ledger.append_line_item(bill, _item(card, 12000, paid_time="130000"))
    ledger.append_line_item(bill, _item(card, -4500, paid_time="140000"))
    db.commit()

    details = BillDetailRepository(db)
    assert bill.charge_amt == 12000
    assert bill.charge_amt == details.sum_paid_amt(bill.id)
    assert details.count_for_bill(bill.id) == 3


def test_append_line_item_rejects_closed_bill(db, make_card):
    card = make_card()
    ledger = BillLedger(db)
    bill = ledger.find_or_create_active(card, "202406")
    ledger.close(bill)
    db.commit()

    with pytest.raises(StatementClosedError):
        ledger.append_line_item(bill, _item(card, 1000))


def test_recompute_total_corrects_drift(db, make_card):
    card = make_card()
    ledger = BillLedger(db)
    bill = ledger.find_or_create_active(card, "202406")
    ledger.append_line_item(bill, _item(card, 3000))
    ledger.append_line_item(bill, _item(card, 2000))
    bill.charge_amt = 999999
    db.commit()

    total = ledger.recompute_total(bill)
    db.commit()

    assert total == 5000
    assert bill.charge_amt == 5000


def test_recompute_total_by_id_unknown_bill(db):
    with pytest.raises(StatementNotFoundError):
        BillLedger(db).recompute_total_by_id(424242)


def test_close_freezes_bill_and_is_idempotent(db, make_card):
    card = make_card()
    ledger = BillLedger(db)
    bill = ledger.find_or_create_active(card, "202406")
    ledger.append_line_item(bill, _item(card, 7000))

    closed_at = datetime(2024, 7, 1, 1, 0, tzinfo=timezone.utc)
    assert ledger.close(bill, closed_at=closed_at) is True
    db.commit()
    db.refresh(bill)
    first_closed_at = bill.closed_at

    assert bill.is_closed()
    assert bill.charge_amt == 7000
    assert first_closed_at is not None

    assert ledger.close(bill) is False
    db.commit()
    db.refresh(bill)

    assert bill.bill_status == BillStatus.CLOSED.value
    assert bill.closed_at == first_closed_at
    assert bill.charge_amt == 7000


def test_create_if_absent_creates_once(db, make_card):
    card = make_card()
    ledger = BillLedger(db)

    assert ledger.create_if_absent(card, "202406") is True
    assert ledger.create_if_absent(card, "202406") is False
    db.commit()

    assert len(_bills_of(db, card)) == 1


def test_create_if_absent_respects_closed_bill(db, make_card):
    """A closed bill still counts as the month's bill for bulk opening"""
    card = make_card()
    ledger = BillLedger(db)
    ledger.close(ledger.find_or_create_active(card, "202406"))

    assert ledger.create_if_absent(card, "202406") is False


def test_reopened_month_gets_next_sequence_number(db, make_card):
    """Posting after the month was closed opens a second bill for that month"""
    card = make_card()
    ledger = BillLedger(db)
    first = ledger.find_or_create_active(card, "202406")
    ledger.close(first)

    second = ledger.find_or_create_active(card, "202406")
    db.commit()

    assert second.id != first.id
    assert second.settlement_seq_no == "0002"
    assert ledger.get_bill_for_month(card, "202406").id == second.id


def test_custom_settlement_day(db, make_card):
    card = make_card()

    bill = BillLedger(db, settlement_day="21").find_or_create_active(card, "202408")

    assert bill.settlement_day == "21"
    assert bill.settlement_date == "20240923"


def test_bill_lock_query_is_select_for_update(db):
    """SQLite ignores row locks, so check the PostgreSQL rendering"""
    statement = BillRepository(db).lock_bill_query(1).statement

    sql = str(statement.compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE" in sql


def test_total_updates_take_the_row_lock(db, make_card):
    """Appending and recomputing both re-read the bill through lock_bill"""
    card = make_card()
    ledger = BillLedger(db)
    bill = ledger.find_or_create_active(card, "202406")

    with patch.object(
        BillRepository, "lock_bill", autospec=True, side_effect=BillRepository.lock_bill
    ) as lock_bill:
        ledger.append_line_item(bill, _item(card, 4500))
        ledger.recompute_total(bill)

    assert [c.args[1] for c in lock_bill.call_args_list] == [bill.id, bill.id]
    assert bill.charge_amt == 4500
