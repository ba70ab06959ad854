"""Test configuration."""
import os
from collections.abc import AsyncIterator, Iterator
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ORDERFLOW_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./orderflow_test.db")

from orderflow.db import get_db  # noqa: E402
from orderflow.main import app  # noqa: E402
from orderflow.models import Base, Order  # noqa: E402
from orderflow.schemas.order import OrderCreate  # noqa: E402
from orderflow.services import deliveries as delivery_service  # noqa: E402
from orderflow.services import orders as order_service  # noqa: E402
from orderflow.services.actors import Actor, ActorRole  # noqa: E402

BUYER_ID = "buyer-1"
SUPPLIER_ID = "supplier-1"


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Iterator[Session]:
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    session = factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def buyer() -> Actor:
    return Actor(id=BUYER_ID, role=ActorRole.BUYER)


@pytest.fixture
def supplier() -> Actor:
    return Actor(id=SUPPLIER_ID, role=ActorRole.SUPPLIER)


@pytest.fixture
def operator() -> Actor:
    return Actor(id="ops-1", role=ActorRole.OPERATOR)


def _headers(actor_id: str, role: str) -> dict[str, str]:
    return {"X-Actor-Id": actor_id, "X-Actor-Role": role}


@pytest.fixture
def buyer_headers() -> dict[str, str]:
    return _headers(BUYER_ID, "buyer")


@pytest.fixture
def supplier_headers() -> dict[str, str]:
    return _headers(SUPPLIER_ID, "supplier")


@pytest.fixture
def operator_headers() -> dict[str, str]:
    return _headers("ops-1", "operator")


class Lifecycle:
    """Drives orders to a given stage through the public services."""

    def __init__(self, db: Session, buyer: Actor, supplier: Actor):
        self.db = db
        self.buyer = buyer
        self.supplier = supplier

    def pending(self, subtotal: str = "100.00", delivery_fee: str = "0.00") -> Order:
        payload = OrderCreate(
            buyer_id=self.buyer.id,
            supplier_id=self.supplier.id,
            subtotal=Decimal(subtotal),
            delivery_fee=Decimal(delivery_fee),
        )
        return order_service.create_order(self.db, payload, actor=self.buyer)

    def confirmed(self, subtotal: str = "100.00", delivery_fee: str = "0.00") -> Order:
        order = self.pending(subtotal, delivery_fee)
        return order_service.accept_order(self.db, order.id, actor=self.supplier)

    def in_delivery(self, subtotal: str = "100.00", delivery_fee: str = "0.00") -> Order:
        order = self.confirmed(subtotal, delivery_fee)
        return order_service.start_delivery(self.db, order.id, actor=self.supplier)

    def awaiting(self, subtotal: str = "100.00", delivery_fee: str = "0.00") -> Order:
        order = self.in_delivery(subtotal, delivery_fee)
        if order.delivery.method.value == "photo":
            delivery_service.submit_photo(
                self.db, order.id, "https://cdn.example.com/proof/1.jpg", actor=self.supplier
            )
            return order
        return order_service.mark_delivered(self.db, order.id, actor=self.supplier)

    def disputed(self, subtotal: str = "100.00", delivery_fee: str = "0.00"):
        order = self.awaiting(subtotal, delivery_fee)
        dispute = delivery_service.report_issue(
            self.db, order.id, "Pallets arrived cracked and wet", actor=self.buyer
        )
        return order, dispute


@pytest.fixture
def lifecycle(db_session: Session, buyer: Actor, supplier: Actor) -> Lifecycle:
    return Lifecycle(db_session, buyer, supplier)
