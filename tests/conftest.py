"""Shared fixtures: in-memory Redis, persistence and payment fakes."""
import base64
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from memorial_store import main
from memorial_store.atomic_scripts import RELEASE_LOCK_SCRIPT, SAVE_SESSION_SCRIPT
from memorial_store.exceptions import NotFoundError, PersistenceError
from memorial_store.models import (
    Order,
    OrderItem,
    OrderStatus,
    PresetText,
    Product,
    ProductFinish,
    ProductFormat,
    ProductSize,
    ProductTheme,
    ProductType,
    Profile,
    Review,
)
from memorial_store.payment_gateway import FakePaymentGateway, reset_gateway, set_gateway
from memorial_store.persistence import set_persistence_client
from memorial_store.redis_client import set_redis_client
from memorial_store.session_store import WizardSessionStore
from memorial_store.wizard import WizardOrchestrator, WizardState

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
PHOTO_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


class FakeRedis:
    """Dict-backed stand-in for the RedisClient wrapper"""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return False
        self.store[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    def exists(self, *keys):
        return sum(1 for key in keys if key in self.store)

    def eval(self, script, num_keys, *keys_and_args):
        if script == RELEASE_LOCK_SCRIPT:
            key, token = keys_and_args
            if self.store.get(key) == token:
                return self.delete(key)
            return 0
        if script == SAVE_SESSION_SCRIPT:
            key, payload, ttl, must_exist = keys_and_args
            if must_exist == "1" and key not in self.store:
                return 0
            self.store[key] = payload
            self.ttls[key] = int(ttl)
            return 1
        raise AssertionError("unexpected script")

    def ping(self):
        return True


class FakePersistence:
    """In-memory catalog, order tables and photo bucket"""

    def __init__(self):
        self.product_types: List[ProductType] = []
        self.products: Dict[str, Product] = {}
        self.themes: List[ProductTheme] = []
        self.formats: List[ProductFormat] = []
        self.orders: Dict[str, Order] = {}
        self.order_items: List[OrderItem] = []
        self.profiles: List[Profile] = []
        self.reviews: List[Review] = []
        self.uploads: List[Dict[str, Any]] = []
        self.status_updates: List[tuple] = []
        self.fail_on: Dict[str, Exception] = {}

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.fail_on[operation]

    # catalog
    def get_product_types(self):
        return list(self.product_types)

    def get_products_by_type(self, type_id):
        return [p for p in self.products.values() if p.product_type_id == type_id]

    def get_product(self, product_id):
        if product_id not in self.products:
            raise NotFoundError("Product", product_id)
        return self.products[product_id]

    def get_product_with_options(self, product_id):
        return self.get_product(product_id)

    def get_themes(self):
        return list(self.themes)

    def get_formats(self):
        return list(self.formats)

    # orders
    def get_order(self, order_id):
        if order_id not in self.orders:
            raise NotFoundError("Order", order_id)
        return self.orders[order_id]

    def get_order_items(self, order_id):
        return [item for item in self.order_items if item.order_id == order_id]

    def create_order(self, order):
        self._maybe_fail("create_order")
        order_id = f"order-{len(self.orders) + 1}"
        created = Order.model_validate({**order, "id": order_id})
        self.orders[order_id] = created
        return created

    def create_order_items(self, items):
        self._maybe_fail("create_order_items")
        created = [
            OrderItem.model_validate({**item, "id": f"item-{len(self.order_items) + i + 1}"})
            for i, item in enumerate(items)
        ]
        self.order_items.extend(created)
        return created

    def update_order_status(self, order_id, status):
        self._maybe_fail("update_order_status")
        if order_id not in self.orders:
            raise NotFoundError("Order", order_id)
        self.status_updates.append((order_id, status))
        updated = self.orders[order_id].model_copy(update={"status": status})
        self.orders[order_id] = updated
        return updated

    def create_profile(self, email, full_name=None):
        profile = Profile(id=f"profile-{len(self.profiles) + 1}", email=email, full_name=full_name)
        self.profiles.append(profile)
        return profile

    def create_review(self, order_id, rating, comment=None, author_name=None):
        review = Review(
            id=f"review-{len(self.reviews) + 1}",
            order_id=order_id,
            rating=rating,
            comment=comment,
            author_name=author_name
        )
        self.reviews.append(review)
        return review

    # storage
    def upload_photos(self, files, folder=None):
        self._maybe_fail("upload_photos")
        urls = []
        for content, filename, content_type in files:
            self.uploads.append({
                "content": content,
                "filename": filename,
                "content_type": content_type,
                "folder": folder,
            })
            urls.append(f"https://storage.example.test/photos/{folder}/{len(self.uploads)}-{filename}")
        return urls


def seed_catalog(persistence: FakePersistence) -> FakePersistence:
    persistence.product_types = [
        ProductType(id="type-cards", name="Memorial Cards"),
        ProductType(id="type-candles", name="Candles"),
    ]
    persistence.products = {
        "prod-card": Product(
            id="prod-card",
            name="Prayer Card",
            price=Decimal("10"),
            product_type_id="type-cards",
            media_refs=["https://cdn.example.test/card.jpg"],
            product_sizes=[
                ProductSize(id="size-small", width=2.5, height=4.25),
                ProductSize(id="size-large", width=5, height=7, label="Large", price_adjustment=Decimal("5")),
            ],
            product_finishes=[
                ProductFinish(id="finish-matte", name="Matte"),
                ProductFinish(id="finish-gloss", name="Gloss", price_adjustment=Decimal("2")),
            ],
            preset_texts=[PresetText(id="preset-1", content="Forever in our hearts")],
        ),
        "prod-candle": Product(
            id="prod-candle",
            name="Memorial Candle",
            price=Decimal("20"),
            product_type_id="type-candles",
        ),
    }
    persistence.themes = [
        ProductTheme(id="theme-classic", name="Classic"),
        ProductTheme(id="theme-floral", name="Floral", price_adjustment=Decimal("3")),
    ]
    persistence.formats = [
        ProductFormat(id="format-digital", name="Digital"),
        ProductFormat(id="format-physical", name="Physical"),
    ]
    return persistence


def photo_entry(photo_id: str = "p1", filename: str = "mom.png") -> Dict[str, Any]:
    return {
        "id": photo_id,
        "file": {
            "filename": filename,
            "contentType": "image/png",
            "data": base64.b64encode(PHOTO_BYTES).decode("ascii"),
        },
        "preview": f"blob:{photo_id}",
    }


def cart_entry(
    item_id: str = "prod-candle-1",
    product_id: str = "prod-candle",
    base_price: str = "20",
    quantity: int = 2
) -> Dict[str, Any]:
    return {
        "id": item_id,
        "productId": product_id,
        "productName": "Memorial Candle",
        "quantity": quantity,
        "basePrice": base_price,
        "totalPrice": str(Decimal(base_price) * quantity),
    }


def valid_forms() -> Dict[str, Dict[str, Any]]:
    return {
        "memorialInfo": {
            "fullName": "Jane Doe",
            "dom": "2024-05-01T00:00:00Z",
            "photos": [photo_entry()],
        },
        "memorialKit": {"cartItems": [cart_entry()]},
        "theme": {"selectedThemeId": "theme-classic"},
        "format": {"selectedFormatId": "format-digital"},
        "email": {"email": "jane@example.com"},
    }


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def persistence():
    return seed_catalog(FakePersistence())


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def store(fake_redis):
    return WizardSessionStore(redis=fake_redis)


@pytest.fixture
def orchestrator(persistence):
    return WizardOrchestrator(persistence=persistence)


@pytest.fixture
def state():
    return WizardState.new("session-1")


@pytest.fixture
def filled_state():
    wizard_state = WizardState.new("session-1")
    wizard_state.forms.update(valid_forms())
    return wizard_state


@pytest.fixture
def api_client(fake_redis, persistence, gateway):
    set_redis_client(fake_redis)
    set_persistence_client(persistence)
    set_gateway(gateway)
    main.set_session_store(None)
    yield TestClient(main.app)
    main.set_session_store(None)
    set_redis_client(None)
    set_persistence_client(None)
    reset_gateway()
