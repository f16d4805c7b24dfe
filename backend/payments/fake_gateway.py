"""Passerelle de paiement factice (dev local et tests).

Simule Stripe sans appel externe: les intents créés sont gardés en mémoire et
leur statut se pilote à l'exécution (succeed / set_status), à la manière du mode
test de Stripe.
"""
import threading
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import uuid4

from backend.checkout.errors import GatewayError, PaymentNotCompleted
from backend.payments.gateway import INTENT_SUCCEEDED, IntentStatus, PaymentGateway, PaymentIntent


class FakeGateway(PaymentGateway):

    def __init__(self, auto_succeed: bool = False) -> None:
        self.auto_succeed = auto_succeed
        self.fail_with: Optional[str] = None
        self.calls: List[dict] = []
        self._intents: Dict[str, IntentStatus] = {}
        self._lock = threading.Lock()

    def create_intent(self, amount: Decimal, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        self.calls.append({"method": "create_intent", "amount": amount, "currency": currency, "metadata": metadata})
        if self.fail_with:
            raise GatewayError(self.fail_with)
        intent_id = f"pi_fake_{uuid4().hex[:12]}"
        status = INTENT_SUCCEEDED if self.auto_succeed else "requires_payment_method"
        with self._lock:
            self._intents[intent_id] = IntentStatus(
                id=intent_id,
                status=status,
                captured_amount=amount,
                currency=currency,
                metadata=dict(metadata),
            )
        return PaymentIntent(id=intent_id, client_secret=f"{intent_id}_secret_fake", amount=amount, currency=currency)

    def get_intent_status(self, intent_id: str) -> IntentStatus:
        self.calls.append({"method": "get_intent_status", "intent_id": intent_id})
        if self.fail_with:
            raise GatewayError(self.fail_with)
        with self._lock:
            intent = self._intents.get(intent_id)
        if intent is None:
            raise PaymentNotCompleted("Paiement introuvable", payment_reference=intent_id)
        return intent

    def register(
        self,
        intent_id: str,
        status: str = INTENT_SUCCEEDED,
        captured_amount: Optional[Decimal] = None,
        metadata: Optional[Dict[str, str]] = None,
        currency: str = "usd",
    ) -> IntentStatus:
        """Déclare un intent arbitraire (tests): statut, montant capturé et metadata."""
        intent = IntentStatus(
            id=intent_id,
            status=status,
            captured_amount=captured_amount,
            currency=currency,
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._intents[intent_id] = intent
        return intent

    def succeed(self, intent_id: str, captured_amount: Optional[Decimal] = None) -> IntentStatus:
        """Simule la confirmation côté client (carte acceptée)."""
        with self._lock:
            current = self._intents[intent_id]
            updated = IntentStatus(
                id=current.id,
                status=INTENT_SUCCEEDED,
                captured_amount=captured_amount if captured_amount is not None else current.captured_amount,
                currency=current.currency,
                metadata=current.metadata,
            )
            self._intents[intent_id] = updated
        return updated
