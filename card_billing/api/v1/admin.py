"""POST /v1/admin/bills/... - manual open/close runs and on-demand recompute"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Path, Request
from sqlalchemy.orm import Session

from card_billing.api.dependencies import get_billing_scheduler, get_request_id
from card_billing.api.v1.schemas import MONTH_PATTERN, BatchResultResponse, RecomputeResponse
from card_billing.domain.exceptions import StatementNotFoundError
from card_billing.domain.models import BatchResult
from card_billing.infrastructure.database.session import get_db
from card_billing.services.ledger import BillLedger
from card_billing.services.scheduler import BillingScheduler

router = APIRouter()


def _to_response(result: BatchResult) -> BatchResultResponse:
    return BatchResultResponse(
        step=result.step,
        charge_month=result.charge_month,
        success_count=result.success_count,
        skipped_count=result.skipped_count,
        failure_count=result.failure_count,
    )


@router.post("/admin/bills/{target_month}/open", response_model=BatchResultResponse)
def open_bills(
    request: Request,
    target_month: str = Path(..., pattern=MONTH_PATTERN),
    scheduler: BillingScheduler = Depends(get_billing_scheduler),
):
    """Create target_month's bills for all billable cards; returns once the batch completes"""
    logging.info("Manual open triggered", extra={"request_id": get_request_id(request), "charge_month": target_month})
    return _to_response(scheduler.create_bills_manually(target_month))


@router.post("/admin/bills/{target_month}/close", response_model=BatchResultResponse)
def close_bills(
    request: Request,
    target_month: str = Path(..., pattern=MONTH_PATTERN),
    scheduler: BillingScheduler = Depends(get_billing_scheduler),
):
    """Close target_month's ACTIVE bills; returns once the batch completes"""
    logging.info("Manual close triggered", extra={"request_id": get_request_id(request), "charge_month": target_month})
    return _to_response(scheduler.close_bills_manually(target_month))


@router.post("/admin/bills/{bill_id}/recompute", response_model=RecomputeResponse)
def recompute_bill(bill_id: int, db: Session = Depends(get_db)):
    """Re-derive a bill's total from its line items"""
    try:
        bill = BillLedger(db).recompute_total_by_id(bill_id)
        db.commit()
    except StatementNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    return RecomputeResponse(
        bill_id=bill.id,
        charge_month=bill.charge_month,
        charge_amt=bill.charge_amt,
        bill_status=bill.bill_status,
    )
