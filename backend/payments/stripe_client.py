"""
Adaptateur Stripe: centralise les appels et la configuration Stripe (PaymentIntents).
"""
import logging
from decimal import Decimal
from typing import Any, Dict

import stripe

from backend.checkout.errors import GatewayError, PaymentNotCompleted
from backend.checkout.totals import from_cents, to_cents
from backend.payments.gateway import IntentStatus, PaymentGateway, PaymentIntent

logger = logging.getLogger(__name__)

# module backend.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l’emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - En absence de clé, les appels Stripe échoueront côté SDK (ex: No API key provided).
    """
    from backend.config import STRIPE_SECRET_KEY
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe

def create_payment_intent(*, amount_cents: int, currency: str, metadata: Dict[str, str]) -> Dict[str, Any]:
    """
    Crée un PaymentIntent Stripe.
    - amount_cents: montant en centimes (entier)
    - metadata: ex {"user_id": "..."} (relié à la confirmation pour le contrôle de propriété)
    Retour: dict PaymentIntent (ex: {"id": "pi_...", "client_secret": "...", ...})
    """
    require_stripe()
    intent = stripe.PaymentIntent.create(
        amount=amount_cents,
        currency=currency,
        metadata=metadata,
        automatic_payment_methods={"enabled": True},
    )
    return dict(intent)

def retrieve_payment_intent(intent_id: str) -> Dict[str, Any]:
    """
    Récupère un PaymentIntent par son identifiant.
    Retour: dict incluant "id", "status", "amount_received", "currency", "metadata".
    """
    require_stripe()
    intent = stripe.PaymentIntent.retrieve(intent_id)
    return dict(intent)


class StripeGateway(PaymentGateway):
    """Passerelle de production: convertit Decimal <-> centimes et les erreurs SDK en erreurs checkout."""

    def create_intent(self, amount: Decimal, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        try:
            intent = create_payment_intent(amount_cents=to_cents(amount), currency=currency, metadata=metadata)
        except stripe.StripeError as e:
            logger.exception("payments.stripe.create_intent failed amount=%s currency=%s", amount, currency)
            raise GatewayError(f"Erreur Stripe: {getattr(e, 'user_message', None) or e}") from e
        return PaymentIntent(
            id=intent.get("id") or "",
            client_secret=intent.get("client_secret") or "",
            amount=from_cents(intent.get("amount") or to_cents(amount)),
            currency=intent.get("currency") or currency,
        )

    def get_intent_status(self, intent_id: str) -> IntentStatus:
        try:
            intent = retrieve_payment_intent(intent_id)
        except stripe.InvalidRequestError as e:
            # Référence inconnue côté Stripe: rien n'a été payé
            logger.warning("payments.stripe.get_intent_status unknown intent=%s: %s", intent_id, e)
            raise PaymentNotCompleted("Paiement introuvable", payment_reference=intent_id) from e
        except stripe.StripeError as e:
            logger.exception("payments.stripe.get_intent_status failed intent=%s", intent_id)
            raise GatewayError("Impossible de vérifier le paiement") from e

        received = intent.get("amount_received")
        return IntentStatus(
            id=intent.get("id") or intent_id,
            status=intent.get("status") or "",
            captured_amount=from_cents(received) if received is not None else None,
            currency=intent.get("currency"),
            metadata=dict(intent.get("metadata") or {}),
        )
