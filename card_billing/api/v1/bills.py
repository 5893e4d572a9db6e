"""GET /v1/users/{user_id}/bills - bill and line-item lookups for query collaborators"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from card_billing.api.v1.schemas import (
    MONTH_PATTERN,
    BillDetailListResponse,
    BillDetailSchema,
    BillListResponse,
    BillSchema,
)
from card_billing.domain.exceptions import UserNotFoundError
from card_billing.infrastructure.database.repositories import BillDetailRepository, BillRepository, UserRepository
from card_billing.infrastructure.database.session import get_db

router = APIRouter()


def _require_user(db: Session, user_id: str) -> None:
    if UserRepository(db).get_user(user_id) is None:
        raise UserNotFoundError(user_id)


@router.get("/users/{user_id}/bills", response_model=BillListResponse)
def list_bills(
    user_id: str,
    from_month: str = Query(..., pattern=MONTH_PATTERN, description="First charge month (YYYYMM)"),
    to_month: str = Query(..., pattern=MONTH_PATTERN, description="Last charge month (YYYYMM)"),
    db: Session = Depends(get_db),
):
    """
    Bills of all the user's cards within a charge-month range.

    Returns:
        Bills ordered by settlement date, latest first
    """
    if from_month > to_month:
        raise HTTPException(status_code=422, detail="from_month must not be after to_month")
    try:
        _require_user(db, user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    bills = BillRepository(db).list_for_user_in_range(user_id, from_month, to_month)

    return BillListResponse(
        user_id=user_id,
        bills=[
            BillSchema(
                charge_month=b.charge_month,
                settlement_seq_no=b.settlement_seq_no,
                card_id=str(b.card_id),
                charge_amt=b.charge_amt,
                settlement_day=b.settlement_day,
                settlement_date=b.settlement_date,
                credit_check_type=b.credit_check_type,
            )
            for b in bills
        ],
    )


@router.get(
    "/users/{user_id}/bills/{charge_month}/{settlement_seq_no}/details",
    response_model=BillDetailListResponse,
)
def list_bill_details(
    user_id: str,
    charge_month: str = Path(..., pattern=MONTH_PATTERN),
    settlement_seq_no: str = Path(..., pattern=r"^\d{4}$"),
    db: Session = Depends(get_db),
):
    """Line items of the user's bills for one charge month and settlement sequence"""
    try:
        _require_user(db, user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    bills = BillRepository(db).list_for_user_month_seq(user_id, charge_month, settlement_seq_no)
    if not bills:
        raise HTTPException(status_code=404, detail="Bill not found")

    detail_repo = BillDetailRepository(db)
    details = detail_repo.list_for_bills([b.id for b in bills])

    return BillDetailListResponse(
        user_id=user_id,
        charge_month=charge_month,
        settlement_seq_no=settlement_seq_no,
        total_paid_amt=sum(b.charge_amt for b in bills),
        total_credit_fee_amt=sum(detail_repo.sum_credit_fee_amt(b.id) for b in bills),
        details=[
            BillDetailSchema(
                card_id=d.card_id,
                paid_date=d.paid_date,
                paid_time=d.paid_time,
                paid_amt=d.paid_amt,
                merchant_name_masked=d.merchant_name_masked,
                credit_fee_amt=d.credit_fee_amt,
                product_type=d.product_type,
            )
            for d in details
        ],
    )
