import os

# Avant tout import de l'app: pas de Redis ni de Supabase/Stripe réels en tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("PAYMENT_GATEWAY", "fake")

import pytest
from datetime import timedelta
from decimal import Decimal
from typing import Generator, Dict, Any
from fastapi.testclient import TestClient

from backend.app import app as fastapi_app
from backend.checkout.dependencies import get_checkout_service
from backend.checkout.memory import MemoryDatabase, memory_stores
from backend.checkout.service import CheckoutService
from backend.checkout.totals import TotalsPolicy
from backend.payments.fake_gateway import FakeGateway
from backend.utils.security import require_user

TEST_USER_ID = "test-user"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture
def address() -> Dict[str, str]:
    return {
        "name": "Ada Lovelace",
        "street": "12 rue des Lilas",
        "city": "Lyon",
        "region": "ARA",
        "postalCode": "69001",
    }

@pytest.fixture
def db() -> MemoryDatabase:
    """Catalogue de base: p1 à 19.99 (stock 10), p2 à 25.00 (stock 5), p3 à 5.00 (stock 1)."""
    database = MemoryDatabase()
    database.add_product("p1", "19.99", 10, name="Mug")
    database.add_product("p2", "25.00", 5, name="T-shirt")
    database.add_product("p3", "5.00", 1, name="Sticker")
    return database

@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()

@pytest.fixture
def policy() -> TotalsPolicy:
    return TotalsPolicy(
        tax_rate=Decimal("0.08"),
        free_shipping_threshold=Decimal("50.00"),
        flat_shipping_fee=Decimal("9.99"),
    )

@pytest.fixture
def checkout_service(db, gateway, policy) -> CheckoutService:
    catalog, cart, ledger = memory_stores(db)
    return CheckoutService(
        catalog=catalog,
        cart=cart,
        ledger=ledger,
        gateway=gateway,
        policy=policy,
        resume_after=timedelta(seconds=30),
    )

@pytest.fixture
def client(app, checkout_service) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_checkout_service] = lambda: checkout_service
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_checkout_service, None)

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    fake_user: Dict[str, Any] = {
        "id": TEST_USER_ID,
        "email": "test@example.com",
        "metadata": {"full_name": "Test User"},
        "token": "fake-token",
    }
    app.dependency_overrides[require_user] = lambda: fake_user
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

@pytest.fixture
def paid_intent(checkout_service, gateway):
    """Crée un intent sur le devis courant du panier puis le marque 'succeeded' (carte acceptée)."""
    def _pay(user_id: str = TEST_USER_ID):
        quote = checkout_service.quote(user_id)
        intent = gateway.create_intent(quote.totals.total, "usd", {"user_id": user_id})
        gateway.succeed(intent.id)
        return intent.id
    return _pay
