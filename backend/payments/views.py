import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from backend.checkout.dependencies import get_checkout_service
from backend.checkout.service import CheckoutService
from backend.orders.models import PaymentIntentRequest
from backend.payments import service as payments_service
from backend.utils.rate_limit import optional_rate_limit
from backend.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Payments API"])

# module backend.payments.views
@router.post("/payment-intents", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_payment_intent(
    body: Optional[PaymentIntentRequest] = None,
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    """
    Crée un PaymentIntent pour le panier de l'utilisateur authentifié.
    - Entrée JSON (optionnelle): { "amount": <informatif>, "currency": "usd" }
    - Le montant facturé est le total serveur du panier (le montant client est ignoré)
    - Sécurité: require_user + rate limit (10 req / 60s)
    - Erreurs: 400 EmptyCart/ValidationError (devise), 409 StockUnavailable, 500 GatewayError
    """
    body = body or PaymentIntentRequest()
    return payments_service.create_payment_intent(
        service,
        user_id=str(user.get("id")),
        currency=body.currency,
        client_amount=body.amount,
    )
