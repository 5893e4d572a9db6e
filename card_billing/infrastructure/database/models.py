"""SQLAlchemy ORM models for cards, transactions and monthly bills"""

import uuid
from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from card_billing.domain.models import BillStatus, CardStatus, CardType, TransactionCategory, TransactionType, UserStatus

Base = declarative_base()


class CardUser(Base):
    """Card holder"""

    __tablename__ = "card_user"

    user_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_ci = Column(String(120), unique=True, nullable=False)
    user_name = Column(String(20), nullable=False)
    status = Column(String(16), nullable=False, default=UserStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    cards = relationship("Card", back_populates="card_user")


class CardProduct(Base):
    """Card product (credit / debit / prepaid)"""

    __tablename__ = "card_product"

    product_code = Column(String(10), primary_key=True)
    product_name = Column(String(50), nullable=False)
    card_type = Column(String(16), nullable=False, default=CardType.CREDIT.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Card(Base):
    """Issued card"""

    __tablename__ = "card"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_no = Column(String(16), unique=True, nullable=False)
    user_id = Column(String(36), ForeignKey("card_user.user_id"), nullable=False, index=True)
    product_code = Column(String(10), ForeignKey("card_product.product_code"), nullable=False)
    card_status = Column(String(16), nullable=False, default=CardStatus.NORMAL.value)
    issue_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    card_user = relationship("CardUser", back_populates="cards")
    card_product = relationship("CardProduct")
    bills = relationship("CardBill", back_populates="card")

    def is_valid(self) -> bool:
        return self.card_status != CardStatus.CLOSED.value

    @property
    def card_type(self) -> str | None:
        return self.card_product.card_type if self.card_product is not None else None


class CardTransactionRecord(Base):
    """Persisted card transaction (owned by transaction ingestion)"""

    __tablename__ = "card_transaction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String(30), unique=True, nullable=False)
    card_id = Column(Integer, ForeignKey("card.id"), nullable=False, index=True)
    tran_date = Column(Date, nullable=False)
    tran_time = Column(Time, nullable=False)
    merchant_name = Column(String(100), nullable=False)
    approved_amt = Column(BigInteger, nullable=False)
    tran_type = Column(String(16), nullable=False, default=TransactionType.APPROVAL.value)
    category = Column(String(16), nullable=False, default=TransactionCategory.OTHERS.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    card = relationship("Card")


class CardBill(Base):
    """Monthly bill: one card's obligation for one charge month"""

    __tablename__ = "card_bill"
    __table_args__ = (
        UniqueConstraint("card_id", "charge_month", "settlement_seq_no", name="uq_card_bill_card_month_seq"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(Integer, ForeignKey("card.id"), nullable=False, index=True)
    charge_month = Column(String(6), nullable=False, index=True)
    settlement_seq_no = Column(String(4), nullable=False, default="0001")
    charge_amt = Column(BigInteger, nullable=False, default=0)
    settlement_day = Column(String(2), nullable=False)
    settlement_date = Column(String(8), nullable=False)
    credit_check_type = Column(String(2), nullable=False)
    bill_status = Column(String(16), nullable=False, default=BillStatus.ACTIVE.value, index=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    card = relationship("Card", back_populates="bills")
    details = relationship("CardBillDetail", back_populates="card_bill", order_by="CardBillDetail.id")

    def is_active(self) -> bool:
        return self.bill_status == BillStatus.ACTIVE.value

    def is_closed(self) -> bool:
        return self.bill_status == BillStatus.CLOSED.value


class CardBillDetail(Base):
    """Line item posted to a bill; never mutated after insert"""

    __tablename__ = "card_bill_detail"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_bill_id = Column(Integer, ForeignKey("card_bill.id"), nullable=False, index=True)
    card_id = Column(String(64), nullable=True)
    paid_date = Column(String(8), nullable=False)
    paid_time = Column(String(6), nullable=False)
    paid_amt = Column(BigInteger, nullable=False)
    merchant_name_masked = Column(Text, nullable=True)
    credit_fee_amt = Column(BigInteger, nullable=False, default=0)
    product_type = Column(String(2), nullable=False, default="01")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    card_bill = relationship("CardBill", back_populates="details")
