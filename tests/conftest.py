"""Pytest fixtures for testing"""

import pytest
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from card_billing.api.main import create_app
from card_billing.domain.models import CardStatus, CardType, UserStatus
from card_billing.infrastructure.database.models import Base, Card, CardProduct, CardUser
from card_billing.infrastructure.database.session import get_db, get_session_factory


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 30})


@event.listens_for(engine, "connect")
def _sqlite_on_connect(dbapi_connection, connection_record):
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave; WAL keeps readers off writers
    dbapi_connection.isolation_level = None
    dbapi_connection.execute("PRAGMA journal_mode=WAL")


@event.listens_for(engine, "begin")
def _sqlite_on_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> Callable[[], Session]:
    """Factory for independent units of work against the test database"""
    return TestingSessionLocal


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        # Each request starts on a fresh snapshot, like a request-scoped session
        db.commit()
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    return TestClient(app)


@pytest.fixture
def make_card(db: Session) -> Callable[..., Card]:
    """Factory creating a card (with its user and product) and committing it"""
    counter = {"n": 0}

    def _make_card(
        card_no: str | None = None,
        card_type: CardType = CardType.CREDIT,
        card_status: CardStatus = CardStatus.NORMAL,
        user_status: UserStatus = UserStatus.ACTIVE,
        user_id: str | None = None,
    ) -> Card:
        counter["n"] += 1
        n = counter["n"]

        product_code = f"KB-{card_type.value}"
        if db.get(CardProduct, product_code) is None:
            db.add(CardProduct(product_code=product_code, product_name=f"KB {card_type.value}", card_type=card_type.value))

        user_id = user_id or f"user-{n:04d}"
        if db.get(CardUser, user_id) is None:
            db.add(CardUser(user_id=user_id, user_ci=f"CI-{user_id}", user_name=f"홍길동{n}", status=user_status.value))

        card = Card(
            card_no=card_no or f"{9400000000000000 + n}",
            user_id=user_id,
            product_code=product_code,
            card_status=card_status.value,
        )
        db.add(card)
        db.commit()
        db.refresh(card)
        return card

    return _make_card
