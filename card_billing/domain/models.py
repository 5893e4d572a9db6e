"""Domain models - pure Python dataclasses representing billing entities"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import List


class CardStatus(str, Enum):
    NORMAL = "NORMAL"
    LOST = "LOST"
    STOPPED = "STOPPED"
    ACCIDENT = "ACCIDENT"
    CLOSED = "CLOSED"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    WITHDRAWN = "WITHDRAWN"


class CardType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    PREPAID = "PREPAID"


class TransactionType(str, Enum):
    APPROVAL = "APPROVAL"
    CANCEL = "CANCEL"


class TransactionCategory(str, Enum):
    FUEL = "FUEL"
    TOLL = "TOLL"
    PARKING = "PARKING"
    MAINTENANCE = "MAINTENANCE"
    SHOPPING = "SHOPPING"
    FOOD = "FOOD"
    OTHERS = "OTHERS"


class BillStatus(str, Enum):
    """Bill lifecycle: ACTIVE -> CLOSED, then PAID/OVERDUE via payment collaborators"""

    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


# Credit/check classification reported on each bill
CREDIT_CHECK_CREDIT = "01"
CREDIT_CHECK_CHECK = "02"

# Product type codes reported on each bill detail
PRODUCT_LUMP_SUM = "01"
PRODUCT_INSTALLMENT = "02"
PRODUCT_CASH_ADVANCE = "03"


@dataclass
class CardTransaction:
    """Finalized transaction handed over by transaction ingestion"""

    transaction_id: str
    card_no: str
    tran_date: date
    tran_time: time
    amount: int  # Signed KRW, cancellations are negative
    merchant_name: str
    tran_type: TransactionType = TransactionType.APPROVAL
    category: TransactionCategory = TransactionCategory.OTHERS


@dataclass
class LineItem:
    """One posted transaction's footprint on a bill"""

    card_id: str
    paid_date: str  # YYYYMMDD
    paid_time: str  # HHMMSS
    paid_amt: int
    merchant_name_masked: str
    credit_fee_amt: int = 0
    product_type: str = PRODUCT_LUMP_SUM


@dataclass
class BatchResult:
    """Outcome of a bulk open/close run"""

    step: str  # "open" | "close"
    charge_month: str
    success_count: int = 0
    skipped_count: int = 0
    failure_count: int = 0
    failed_keys: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.skipped_count + self.failure_count
