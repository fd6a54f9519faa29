import json
from types import SimpleNamespace

import httpx
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

from raidergo.core.config import Settings, get_settings
from raidergo.db.session import get_db
from raidergo.routers.payments import get_paypal_verifier
from raidergo.services.paypal import PayPalOrderVerifier
from server import app

PAYPAL_BASE = "https://api-m.sandbox.paypal.com"
IPN_SECRET = "ipn-secret-word"
BUY_LINK_SECRET = "buy-link-secret"

def _matches(doc, query):
    return all(doc.get(key) == value for key, value in (query or {}).items())

class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length=None):
        docs = self.docs if length is None else self.docs[:length]
        return [dict(doc) for doc in docs]

class FakeCollection:
    """Just enough of a motor collection, including unique index enforcement"""

    def __init__(self, name):
        self.name = name
        self.docs = []
        self.unique_keys = []

    def seed(self, *docs):
        for doc in docs:
            self.docs.append(dict(doc, _id=ObjectId()))

    def all(self, query=None):
        return [dict(doc) for doc in self.docs if _matches(doc, query)]

    async def create_index(self, keys, unique=False, name=None):
        fields = (keys,) if isinstance(keys, str) else tuple(field for field, _ in keys)
        if unique and fields not in self.unique_keys:
            self.unique_keys.append(fields)
        return name or "_".join(fields)

    async def insert_one(self, doc):
        for fields in self.unique_keys:
            key = tuple(doc.get(field) for field in fields)
            if any(tuple(existing.get(field) for field in fields) == key for existing in self.docs):
                raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} index: {fields}")
        stored = dict(doc)
        stored.setdefault("_id", ObjectId())
        doc["_id"] = stored["_id"]
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one(self, query=None):
        for doc in self.docs:
            if _matches(doc, query):
                return dict(doc)
        return None

    def find(self, query=None):
        return FakeCursor([doc for doc in self.docs if _matches(doc, query)])

    async def count_documents(self, query=None):
        return len([doc for doc in self.docs if _matches(doc, query)])

class FakeDatabase:
    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

class FakePayPal:
    """Serves PayPal's token and order endpoints from a dict of orders"""

    def __init__(self):
        self.orders = {}
        self.token_status = 200
        self.order_error = None
        self.calls = []

    def add_order(self, order_id, status="COMPLETED", value="49.99", currency="USD", custom_id=None, captured=None):
        unit = {"amount": {"currency_code": currency, "value": value}}
        if custom_id is not None:
            unit["custom_id"] = custom_id
        if captured is not None:
            unit["payments"] = {"captures": [{"id": "CAP-1", "amount": {"currency_code": currency, "value": captured}}]}
        self.orders[order_id] = {"id": order_id, "status": status, "purchase_units": [unit]}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if request.url.path == "/v1/oauth2/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": "A21-test-token", "token_type": "Bearer"})

        if self.order_error is not None:
            raise self.order_error
        if request.headers.get("Authorization") != "Bearer A21-test-token":
            return httpx.Response(401, json={"name": "AUTHENTICATION_FAILURE"})
        order_id = request.url.path.rsplit("/", 1)[-1]
        if order_id not in self.orders:
            return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})
        return httpx.Response(200, content=json.dumps(self.orders[order_id]))

    def verifier(self):
        return PayPalOrderVerifier(
            "client-id", "client-secret", api_base=PAYPAL_BASE, transport=httpx.MockTransport(self.handler)
        )

@pytest.fixture
def fake_db():
    database = FakeDatabase()
    # Mirrors ensure_indexes, which test_purchase checks against this fake
    database.purchases.unique_keys = [("provider_ref",), ("buyer_id", "course_id")]
    return database

@pytest.fixture
def paypal():
    return FakePayPal()

@pytest.fixture
def test_settings():
    return Settings(
        PUBLIC_BASE_URL="https://raidergo.test",
        PAYPAL_CLIENT_ID="client-id",
        PAYPAL_CLIENT_SECRET="client-secret",
        PAYPAL_API_BASE=PAYPAL_BASE,
        VERIFONE_MERCHANT_ID="255036765830",
        VERIFONE_BUY_LINK_SECRET=BUY_LINK_SECRET,
        VERIFONE_IPN_SECRET=IPN_SECRET,
        JWT_SECRET="jwt-test-secret",
    )

@pytest.fixture
def client(fake_db, paypal, test_settings):
    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_paypal_verifier] = paypal.verifier
    yield TestClient(app)
    app.dependency_overrides.clear()
