"""POST /v1/transactions - record a card transaction and post it to the bill"""

import logging
import uuid
from datetime import datetime
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from card_billing.api.dependencies import get_request_id
from card_billing.api.v1.schemas import TransactionRequest, TransactionResponse
from card_billing.config import settings
from card_billing.domain.models import CardTransaction
from card_billing.infrastructure.database.repositories import CardRepository, TransactionRepository
from card_billing.infrastructure.database.session import SessionFactory, get_db, get_session_factory
from card_billing.services.posting import post_transaction_safely
from card_billing.utils.date_utils import now_in

router = APIRouter()


def generate_transaction_id() -> str:
    """TXN + epoch millis + 8 hex chars, 30 chars max"""
    return f"TXN{int(datetime.now().timestamp() * 1000)}{uuid.uuid4().hex[:8].upper()}"


@router.post("/transactions", response_model=TransactionResponse, status_code=201)
def create_transaction(
    request_body: TransactionRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    session_factory: SessionFactory = Depends(get_session_factory),
):
    """
    Record a transaction, then post it to the card's active bill.

    Flow:
    1. Resolve the card and reject closed cards
    2. Persist the transaction and commit
    3. Schedule posting as a separate unit of work

    A posting failure is logged by the background task and never turns the
    already-committed transaction into an error response.
    """
    request_id = get_request_id(request)

    card = CardRepository(db).get_by_card_no(request_body.card_no)
    if card is None:
        logging.warning("Card not found", extra={"request_id": request_id, "card_no": request_body.card_no})
        raise HTTPException(status_code=404, detail="Card not found")
    if not card.is_valid():
        logging.warning(
            "Transaction on closed card rejected",
            extra={"request_id": request_id, "card_no": card.card_no, "card_status": card.card_status},
        )
        raise HTTPException(status_code=409, detail="Card is closed")

    # Defaults share the issuer clock used for the charge month
    now = now_in(settings.timezone)
    transaction = CardTransaction(
        transaction_id=generate_transaction_id(),
        card_no=card.card_no,
        tran_date=request_body.tran_date or now.date(),
        tran_time=request_body.tran_time or now.time().replace(microsecond=0),
        amount=request_body.amount,
        merchant_name=request_body.merchant_name,
        tran_type=request_body.tran_type,
        category=request_body.category,
    )

    try:
        TransactionRepository(db).create_transaction(card, transaction)
        db.commit()
    except Exception as e:
        db.rollback()
        logging.error(f"Transaction persistence failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    background_tasks.add_task(post_transaction_safely, session_factory, transaction)

    logging.info(
        "Transaction recorded",
        extra={"request_id": request_id, "transaction_id": transaction.transaction_id, "card_no": transaction.card_no},
    )

    return TransactionResponse(
        transaction_id=transaction.transaction_id,
        card_no=transaction.card_no,
        tran_date=transaction.tran_date,
        tran_time=transaction.tran_time,
        amount=transaction.amount,
        tran_type=transaction.tran_type,
    )
