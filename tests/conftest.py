"""Shared fixtures.

Every test gets its own SQLite database file. The schema is created and
seeded through a synchronous engine; the code under test talks to the
same file through aiosqlite.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("PRODAMUS_SECRET_KEY", "test-prodamus-secret")
os.environ.setdefault("PRODAMUS_PAYMENT_FORM_URL", "https://pay.example.test/")
os.environ.setdefault("FRONTEND_URL", "https://shop.example.test")
os.environ.setdefault("API_URL", "https://api.shop.example.test")
os.environ.setdefault("LOG_JSON", "false")

from collections.abc import Callable  # noqa: E402
from datetime import datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, func, select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from storefront.infrastructure.database import Base  # noqa: E402
from storefront.infrastructure.models import Order, Product, Promocode  # noqa: E402
from storefront.infrastructure.prodamus import ProdamusGateway  # noqa: E402

TEST_SECRET = os.environ["PRODAMUS_SECRET_KEY"]
TEST_FORM_URL = os.environ["PRODAMUS_PAYMENT_FORM_URL"]


# ============================================================================
# Fakes
# ============================================================================


class RecordingNotifier:
    """Notifier that remembers what it was asked to send."""

    def __init__(self) -> None:
        self.placed: list[str] = []
        self.paid: list[str] = []
        self.status_changes: list[tuple[str, str]] = []
        self.closed = False

    async def notify_order_placed(self, order: Order) -> None:
        self.placed.append(order.order_number)

    async def notify_payment_confirmed(self, order: Order) -> None:
        self.paid.append(order.order_number)

    async def notify_status_changed(self, order: Order) -> None:
        self.status_changes.append((order.order_number, order.status))

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of the per-test database file."""
    return tmp_path / "storefront.db"


@pytest.fixture
def sync_engine(db_path: Path) -> Engine:
    """Synchronous engine used to create the schema, seed and inspect."""
    engine = create_engine(f"sqlite:///{db_path}", poolclass=NullPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_path: Path, sync_engine: Engine) -> async_sessionmaker[AsyncSession]:
    """Async session factory over the per-test database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        poolclass=NullPool,
        connect_args={"timeout": 5},
    )
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncSession:
    """Async session for service tests."""
    async with session_factory() as session:
        yield session


# ============================================================================
# Collaborators
# ============================================================================


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gateway() -> ProdamusGateway:
    """Gateway codec configured with the test secret."""
    return ProdamusGateway(secret_key=TEST_SECRET, payment_form_url=TEST_FORM_URL)


# ============================================================================
# Seed Data
# ============================================================================


@pytest.fixture
def make_product(sync_engine: Engine) -> Callable[..., Product]:
    """Factory inserting a product and returning it detached."""
    counter = {"n": 0}

    def _make(**overrides) -> Product:
        counter["n"] += 1
        values = {
            "name": f"Product {counter['n']}",
            "article": f"ART-{counter['n']:04d}",
            "price": Decimal("1000.00"),
            "quantity": 10,
        }
        values.update(overrides)
        product = Product(**values)
        with Session(sync_engine, expire_on_commit=False) as db:
            db.add(product)
            db.commit()
        return product

    return _make


@pytest.fixture
def make_promocode(sync_engine: Engine) -> Callable[..., Promocode]:
    """Factory inserting a promocode and returning it detached."""

    def _make(**overrides) -> Promocode:
        values = {
            "code": "SALE10",
            "discount_type": "PERCENT",
            "discount_value": Decimal("10"),
            "valid_from": datetime(2020, 1, 1, tzinfo=timezone.utc),
        }
        values.update(overrides)
        promocode = Promocode(**values)
        with Session(sync_engine, expire_on_commit=False) as db:
            db.add(promocode)
            db.commit()
        return promocode

    return _make


@pytest.fixture
def stock_of(sync_engine: Engine) -> Callable[[str], int]:
    """Read the committed stock of a product."""

    def _stock(product_id: str) -> int:
        with Session(sync_engine) as db:
            return db.get(Product, product_id).quantity

    return _stock


@pytest.fixture
def promocode_uses(sync_engine: Engine) -> Callable[[str], int]:
    """Read the committed usage count of a promocode."""

    def _uses(promocode_id: str) -> int:
        with Session(sync_engine) as db:
            return db.get(Promocode, promocode_id).used_count

    return _uses


@pytest.fixture
def order_count(sync_engine: Engine) -> Callable[[], int]:
    """Count committed orders."""

    def _count() -> int:
        with Session(sync_engine) as db:
            return db.scalar(select(func.count()).select_from(Order))

    return _count
