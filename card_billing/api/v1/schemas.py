"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, time
from typing import List, Optional

from card_billing.domain.models import TransactionCategory, TransactionType

MONTH_PATTERN = r"^\d{6}$"


class TransactionRequest(BaseModel):
    """Request body for POST /v1/transactions"""

    card_no: str = Field(..., min_length=16, max_length=16, description="Card number")
    amount: int = Field(..., description="Signed amount in KRW; cancellations are negative")
    merchant_name: str = Field(..., min_length=1, max_length=100)
    tran_date: Optional[date] = None
    tran_time: Optional[time] = None
    tran_type: TransactionType = TransactionType.APPROVAL
    category: TransactionCategory = TransactionCategory.OTHERS


class TransactionResponse(BaseModel):
    """Response for POST /v1/transactions"""

    transaction_id: str
    card_no: str
    tran_date: date
    tran_time: time
    amount: int
    tran_type: TransactionType


class BillSchema(BaseModel):
    """Single bill in a user's bill list"""

    charge_month: str
    settlement_seq_no: str
    card_id: str
    charge_amt: int
    settlement_day: str
    settlement_date: str
    credit_check_type: str


class BillListResponse(BaseModel):
    """Response for GET /v1/users/{user_id}/bills"""

    user_id: str
    bills: List[BillSchema]


class BillDetailSchema(BaseModel):
    """Single line item of a bill"""

    card_id: Optional[str] = None
    paid_date: str
    paid_time: str
    paid_amt: int
    merchant_name_masked: Optional[str] = None
    credit_fee_amt: int = 0
    product_type: str


class BillDetailListResponse(BaseModel):
    """Response for GET /v1/users/{user_id}/bills/{charge_month}/{settlement_seq_no}/details"""

    user_id: str
    charge_month: str
    settlement_seq_no: str
    total_paid_amt: int
    total_credit_fee_amt: int
    details: List[BillDetailSchema]


class BatchResultResponse(BaseModel):
    """Response for manual open/close runs"""

    step: str
    charge_month: str
    success_count: int
    skipped_count: int
    failure_count: int


class RecomputeResponse(BaseModel):
    """Response for POST /v1/admin/bills/{bill_id}/recompute"""

    bill_id: int
    charge_month: str
    charge_amt: int
    bill_status: str
