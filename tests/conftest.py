import pytest
import os
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import inventory_sync.models  # noqa: F401
from inventory_sync.core.config import settings
from inventory_sync.core.deps import get_db
from inventory_sync.core.id_utils import generate_shortuuid
from inventory_sync.db.base import Base
from inventory_sync.main import app
from inventory_sync.models.inventory import InventoryItem
from inventory_sync.services.channel_adapters import ChannelResult, reset_channel_adapters

POS_SIGNATURE_KEY = "pos-signature-key"
MARKETPLACE_WEBHOOK_SECRET = "marketplace-webhook-secret"


class FakeChannelAdapter:
    """In-memory channel: records calls and replays queued results."""

    def __init__(self, name: str, *, configured: bool = True):
        self.name = name
        self.configured = configured
        self.calls: list[tuple[str, str]] = []
        self.withdraw_results: list[ChannelResult | Exception] = []
        self.publish_results: list[ChannelResult] = []

    def is_configured(self) -> bool:
        return self.configured

    def has_reference(self, item: InventoryItem) -> bool:
        if self.name == "pos":
            return bool(item.pos_item_ref or item.pos_variation_ref or item.pos_catalog_ref)
        return bool(item.market_offer_ref or item.market_listing_ref)

    def publish(self, item: InventoryItem) -> ChannelResult:
        self.calls.append(("publish", item.id))
        if self.publish_results:
            return self.publish_results.pop(0)
        listing_ref = f"{self.name}-listing-{item.code}"
        if self.name == "pos":
            item.pos_item_ref = listing_ref
        else:
            item.market_listing_ref = listing_ref
            item.market_offer_ref = f"offer-{item.code}"
        return ChannelResult.success("publish", listing_ref=listing_ref)

    def withdraw(self, item: InventoryItem) -> ChannelResult:
        self.calls.append(("withdraw", item.id))
        if self.withdraw_results:
            result = self.withdraw_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return ChannelResult.success("withdraw")

    def update_quantity(self, item: InventoryItem, new_qty: int) -> ChannelResult:
        self.calls.append(("update_quantity", item.id))
        if new_qty == 0:
            return self.withdraw(item)
        return ChannelResult.success("update_quantity")

    def withdrawn_ids(self) -> list[str]:
        return [item_id for action, item_id in self.calls if action == "withdraw"]


def _sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # let SQLAlchemy own BEGIN so SAVEPOINTs behave on pysqlite
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture()
def channels():
    pos = FakeChannelAdapter("pos")
    marketplace = FakeChannelAdapter("marketplace")
    reset_channel_adapters([pos, marketplace])
    yield {"pos": pos, "marketplace": marketplace}
    reset_channel_adapters()


@pytest.fixture()
def session_local():
    engine = _sqlite_engine()
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db(session_local):
    session = session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def test_context(session_local, channels, monkeypatch):
    monkeypatch.setattr(settings, "secret_key", "test-secret-key")
    monkeypatch.setattr(settings, "pos_webhook_signature_key", POS_SIGNATURE_KEY)
    monkeypatch.setattr(settings, "marketplace_webhook_secret", MARKETPLACE_WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "pos_access_token", None)
    monkeypatch.setattr(settings, "seller_categories", {})

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()


def _create_item(db, **overrides) -> InventoryItem:
    values = {
        "id": generate_shortuuid(),
        "code": "AB12",
        "name": "AB12 - Manteau laine",
        "category": "AB - Manteau",
        "seller_code": "AB",
        "price": Decimal("120.00"),
        "quantity": 1,
        "is_small_batch": False,
        "lifecycle_state": "active",
        "removal_incomplete": False,
        "removal_attempts": 0,
    }
    values.update(overrides)
    item = InventoryItem(**values)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture()
def make_item():
    return _create_item
