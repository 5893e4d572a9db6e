"""Structured JSON logging for billing operations"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from card_billing.config import settings
from card_billing.domain.models import BatchResult


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping timestamp, level and service name on every record"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_posting(
    transaction_id: str,
    card_no: str,
    bill_id: int,
    charge_month: str,
    charge_amt: int,
    duration_ms: float,
) -> None:
    """Log a transaction posted to its bill"""
    logging.getLogger("card_billing.posting").info(
        "Transaction posted to bill",
        extra={
            "transaction_id": transaction_id,
            "card_no": card_no,
            "bill_id": bill_id,
            "charge_month": charge_month,
            "charge_amt": charge_amt,
            "duration_ms": duration_ms,
        },
    )


def log_batch_result(result: BatchResult, duration_ms: float) -> None:
    """Log the aggregate outcome of a bulk open/close run"""
    level = logging.WARNING if result.failure_count else logging.INFO
    logging.getLogger("card_billing.scheduler").log(
        level,
        "Billing batch completed",
        extra={
            "step": result.step,
            "charge_month": result.charge_month,
            "success_count": result.success_count,
            "skipped_count": result.skipped_count,
            "failure_count": result.failure_count,
            "duration_ms": duration_ms,
        },
    )
