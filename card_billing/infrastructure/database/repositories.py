"""Data access layer for cards, transactions and bills"""

from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Query, Session, joinedload
from card_billing.infrastructure.database.models import (
    Card,
    CardBill,
    CardBillDetail,
    CardTransactionRecord,
    CardUser,
)
from card_billing.domain.models import BillStatus, CardStatus, CardTransaction, LineItem, UserStatus


class UserRepository:
    """Repository for card holders"""

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> Optional[CardUser]:
        return self.db.query(CardUser).filter(CardUser.user_id == user_id).first()


class CardRepository:
    """Repository for issued cards"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_card_no(self, card_no: str) -> Optional[Card]:
        return (
            self.db.query(Card)
            .options(joinedload(Card.card_product), joinedload(Card.card_user))
            .filter(Card.card_no == card_no)
            .first()
        )

    def get_by_id(self, card_id: int) -> Optional[Card]:
        return (
            self.db.query(Card)
            .options(joinedload(Card.card_product), joinedload(Card.card_user))
            .filter(Card.id == card_id)
            .first()
        )

    def fetch_billable_card_ids(self, after_id: int, limit: int) -> List[int]:
        """
        One page of cards that should receive a monthly bill.

        Billable means the card is not closed and its owner is an active user.
        Keyset pagination on the card id keeps each page query cheap.
        """
        rows = (
            self.db.query(Card.id)
            .join(CardUser, Card.user_id == CardUser.user_id)
            .filter(
                Card.id > after_id,
                Card.card_status != CardStatus.CLOSED.value,
                CardUser.status == UserStatus.ACTIVE.value,
            )
            .order_by(Card.id)
            .limit(limit)
            .all()
        )
        return [row[0] for row in rows]


class TransactionRepository:
    """Repository for recorded card transactions"""

    def __init__(self, db: Session):
        self.db = db

    def create_transaction(self, card: Card, transaction: CardTransaction) -> CardTransactionRecord:
        record = CardTransactionRecord(
            transaction_id=transaction.transaction_id,
            card_id=card.id,
            tran_date=transaction.tran_date,
            tran_time=transaction.tran_time,
            merchant_name=transaction.merchant_name,
            approved_amt=transaction.amount,
            tran_type=transaction.tran_type.value,
            category=transaction.category.value,
        )
        self.db.add(record)
        self.db.flush()
        return record


class BillRepository:
    """Repository for monthly bills"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, bill_id: int) -> Optional[CardBill]:
        return self.db.query(CardBill).filter(CardBill.id == bill_id).first()

    def lock_bill_query(self, bill_id: int) -> Query:
        """SELECT ... FOR UPDATE on one bill, refreshing any copy already in the session"""
        return (
            self.db.query(CardBill)
            .filter(CardBill.id == bill_id)
            .with_for_update()
            .populate_existing()
        )

    def lock_bill(self, bill_id: int) -> Optional[CardBill]:
        """Re-read a bill under a row lock so running-total updates are serialized"""
        return self.lock_bill_query(bill_id).first()

    def find_active_bills(self, card_id: int) -> List[CardBill]:
        """ACTIVE bills of a card, newest charge month first"""
        return (
            self.db.query(CardBill)
            .filter(CardBill.card_id == card_id, CardBill.bill_status == BillStatus.ACTIVE.value)
            .order_by(CardBill.charge_month.desc(), CardBill.settlement_seq_no.desc())
            .all()
        )

    def find_by_card_and_month(self, card_id: int, charge_month: str) -> List[CardBill]:
        return (
            self.db.query(CardBill)
            .filter(CardBill.card_id == card_id, CardBill.charge_month == charge_month)
            .order_by(CardBill.settlement_seq_no)
            .all()
        )

    def next_settlement_seq_no(self, card_id: int, charge_month: str, default: str = "0001") -> str:
        """Next free sequence number for (card, month), e.g. "0002" after a closed "0001" """
        current = (
            self.db.query(func.max(CardBill.settlement_seq_no))
            .filter(CardBill.card_id == card_id, CardBill.charge_month == charge_month)
            .scalar()
        )
        if current is None:
            return default
        return f"{int(current) + 1:04d}"

    def create_bill(
        self,
        card_id: int,
        charge_month: str,
        settlement_seq_no: str,
        settlement_day: str,
        settlement_date: str,
        credit_check_type: str,
    ) -> CardBill:
        db_bill = CardBill(
            card_id=card_id,
            charge_month=charge_month,
            settlement_seq_no=settlement_seq_no,
            charge_amt=0,
            settlement_day=settlement_day,
            settlement_date=settlement_date,
            credit_check_type=credit_check_type,
            bill_status=BillStatus.ACTIVE.value,
        )
        self.db.add(db_bill)
        self.db.flush()  # Surface unique-constraint conflicts now
        return db_bill

    def fetch_active_bill_ids_for_month(self, charge_month: str, after_id: int, limit: int) -> List[int]:
        rows = (
            self.db.query(CardBill.id)
            .filter(
                CardBill.id > after_id,
                CardBill.charge_month == charge_month,
                CardBill.bill_status == BillStatus.ACTIVE.value,
            )
            .order_by(CardBill.id)
            .limit(limit)
            .all()
        )
        return [row[0] for row in rows]

    def list_for_user_in_range(self, user_id: str, from_month: str, to_month: str) -> List[CardBill]:
        """Bills of a user's cards within [from_month, to_month], latest settlement first"""
        return (
            self.db.query(CardBill)
            .join(Card, CardBill.card_id == Card.id)
            .options(joinedload(CardBill.card))
            .filter(
                Card.user_id == user_id,
                CardBill.charge_month >= from_month,
                CardBill.charge_month <= to_month,
            )
            .order_by(CardBill.settlement_date.desc(), CardBill.charge_month.desc(), CardBill.id.desc())
            .all()
        )

    def list_for_user_month_seq(self, user_id: str, charge_month: str, settlement_seq_no: str) -> List[CardBill]:
        return (
            self.db.query(CardBill)
            .join(Card, CardBill.card_id == Card.id)
            .filter(
                Card.user_id == user_id,
                CardBill.charge_month == charge_month,
                CardBill.settlement_seq_no == settlement_seq_no,
            )
            .order_by(CardBill.id)
            .all()
        )


class BillDetailRepository:
    """Repository for bill line items"""

    def __init__(self, db: Session):
        self.db = db

    def add_detail(self, bill: CardBill, item: LineItem) -> CardBillDetail:
        db_detail = CardBillDetail(
            card_bill_id=bill.id,
            card_id=item.card_id,
            paid_date=item.paid_date,
            paid_time=item.paid_time,
            paid_amt=item.paid_amt,
            merchant_name_masked=item.merchant_name_masked,
            credit_fee_amt=item.credit_fee_amt,
            product_type=item.product_type,
        )
        self.db.add(db_detail)
        self.db.flush()
        return db_detail

    def sum_paid_amt(self, bill_id: int) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(CardBillDetail.paid_amt), 0))
            .filter(CardBillDetail.card_bill_id == bill_id)
            .scalar()
        )
        return int(total)

    def sum_credit_fee_amt(self, bill_id: int) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(CardBillDetail.credit_fee_amt), 0))
            .filter(CardBillDetail.card_bill_id == bill_id)
            .scalar()
        )
        return int(total)

    def count_for_bill(self, bill_id: int) -> int:
        return self.db.query(CardBillDetail).filter(CardBillDetail.card_bill_id == bill_id).count()

    def list_for_bills(self, bill_ids: List[int]) -> List[CardBillDetail]:
        """Line items of the given bills, most recent use first"""
        if not bill_ids:
            return []
        return (
            self.db.query(CardBillDetail)
            .filter(CardBillDetail.card_bill_id.in_(bill_ids))
            .order_by(CardBillDetail.paid_date.desc(), CardBillDetail.paid_time.desc(), CardBillDetail.id.desc())
            .all()
        )
