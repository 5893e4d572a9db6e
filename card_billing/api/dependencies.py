"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from card_billing.infrastructure.database.session import SessionFactory, get_session_factory
from card_billing.services.scheduler import BillingScheduler


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_billing_scheduler(session_factory: SessionFactory = Depends(get_session_factory)) -> BillingScheduler:
    """Provide a scheduler for manual open/close runs"""
    return BillingScheduler(session_factory)
