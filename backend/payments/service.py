"""
Cas d'usage 'payments': création du PaymentIntent dimensionné sur le devis serveur.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from backend.checkout.errors import ValidationError
from backend.checkout.service import CheckoutService
from backend.checkout.totals import to_decimal

logger = logging.getLogger(__name__)

# module backend.payments.service
def create_payment_intent(
    service: CheckoutService,
    *,
    user_id: str,
    currency: Optional[str] = None,
    client_amount: Optional[Decimal] = None,
) -> Dict[str, Any]:
    """
    Crée un PaymentIntent pour le panier courant de l'utilisateur.
    - Montant: total recalculé côté serveur (Totals Policy), jamais celui envoyé par le client
    - Devise: celle de la boutique; une autre devise est refusée (400)
    - metadata.user_id: relu à la confirmation pour vérifier la propriété du paiement
    - client_amount: journalisé s'il diverge du devis, sans effet sur le montant
    Retour: {clientSecret, paymentReference, amount, currency, totals}
    """
    if currency is None:
        currency = service.currency
    currency = currency.strip().lower()
    if len(currency) != 3 or not currency.isalpha():
        raise ValidationError("Devise invalide", field="currency")
    if currency != service.currency:
        raise ValidationError(
            "Devise non acceptée par la boutique",
            field="currency",
            expected=service.currency,
        )

    quote = service.quote(user_id)
    total = quote.totals.total
    if client_amount is not None and to_decimal(client_amount) != total:
        logger.warning(
            "payments.intent amount_diverges user_id=%s client=%s server=%s",
            user_id, client_amount, total,
        )

    intent = service.gateway.create_intent(total, currency, {"user_id": user_id})
    logger.info("payments.intent created id=%s user_id=%s amount=%s", intent.id, user_id, total)
    return {
        "clientSecret": intent.client_secret,
        "paymentReference": intent.id,
        "amount": str(total),
        "currency": currency,
        "totals": quote.totals.as_dict(),
    }
