import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.checkout.dependencies import get_checkout_service
from backend.checkout.errors import NotFound, PaymentOwnershipMismatch
from backend.checkout.service import CheckoutService
from backend.orders.models import CompleteOrderRequest
from backend.utils.rate_limit import optional_rate_limit
from backend.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])

# module backend.orders.views
# Routes synchrones (threadpool): une déconnexion client n'interrompt pas un checkout en cours.
@router.post("/complete", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def complete_order(
    body: CompleteOrderRequest,
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Transforme le panier payé en commande.
    - Entrée JSON: { "paymentReference": "pi_...", "shippingAddress": {...}, "billingAddress": {...} }
    - Idempotent par paymentReference: un rejeu renvoie la même commande sans nouvel effet
    - Réponse 201: { "order": {...}, "success": true }
    - Erreurs: 400 (validation, paiement non confirmé, panier vide), 403 (paiement d'un autre
      utilisateur), 409 (stock, montant, commande en cours), 500 (persistance, passerelle)
    """
    order = service.complete_checkout(
        user_id=str(user.get("id")),
        payment_reference=body.payment_reference,
        shipping_address=body.shipping_address,
        billing_address=body.billing_address,
    )
    return JSONResponse(status_code=201, content={"order": order.to_public(), "success": True})


@router.get("")
def list_orders(
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    """Historique des commandes de l'utilisateur, les plus récentes d'abord."""
    orders = service.list_orders(str(user.get("id")))
    return {"orders": [o.to_public() for o in orders]}


@router.get("/{order_id}")
def get_order(
    order_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    order = service.get_order(order_id)
    if order is None:
        raise NotFound("Commande introuvable", order_id=order_id)
    if order.user_id != str(user.get("id")):
        raise PaymentOwnershipMismatch("Commande appartenant à un autre utilisateur")
    return {"order": order.to_public()}
