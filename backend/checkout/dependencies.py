# module backend.checkout.dependencies
"""
Assemblage du CheckoutService à partir de la configuration.
- STORE_BACKEND: "supabase" (tables + fonctions SQL) ou "memory" (dev local sans base)
- PAYMENT_GATEWAY: "stripe" ou "fake"
Les routes dépendent de get_checkout_service: les tests la remplacent via app.dependency_overrides.
"""
import logging
import threading
from datetime import timedelta
from typing import Optional

from backend import config
from backend.checkout.memory import memory_stores
from backend.checkout.service import CheckoutService
from backend.checkout.totals import default_policy
from backend.payments.gateway import PaymentGateway

logger = logging.getLogger(__name__)

_service: Optional[CheckoutService] = None
_lock = threading.Lock()


def _build_gateway() -> PaymentGateway:
    if config.PAYMENT_GATEWAY == "fake":
        from backend.payments.fake_gateway import FakeGateway
        return FakeGateway(auto_succeed=True)
    from backend.payments.stripe_client import StripeGateway
    return StripeGateway()


def build_checkout_service() -> CheckoutService:
    if config.STORE_BACKEND == "memory":
        catalog, cart, ledger = memory_stores()
    else:
        from backend.cart.repository import SupabaseCartStore
        from backend.catalog.repository import SupabaseCatalogStore
        from backend.orders.repository import SupabaseOrderLedger
        catalog, cart, ledger = SupabaseCatalogStore(), SupabaseCartStore(), SupabaseOrderLedger()

    logger.info("checkout.wiring store=%s gateway=%s", config.STORE_BACKEND, config.PAYMENT_GATEWAY)
    return CheckoutService(
        catalog=catalog,
        cart=cart,
        ledger=ledger,
        gateway=_build_gateway(),
        policy=default_policy(),
        currency=config.CURRENCY,
        amount_tolerance=config.AMOUNT_TOLERANCE,
        finalize_retries=config.CHECKOUT_FINALIZE_RETRIES,
        resume_after=timedelta(seconds=config.CHECKOUT_RESUME_AFTER_SECONDS),
    )


def get_checkout_service() -> CheckoutService:
    """Dépendance FastAPI: instance unique par process (les stores mémoire doivent être partagés)."""
    global _service
    if _service is None:
        with _lock:
            if _service is None:
                _service = build_checkout_service()
    return _service
