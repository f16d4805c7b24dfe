# module backend.checkout.errors
"""
Taxonomie des erreurs du checkout.

Chaque erreur porte un `code` stable (renvoyé au client dans {"error": code, "message": ...})
et le statut HTTP associé. Les handlers FastAPI (backend.app_setup.exceptions) se chargent du rendu:
aucune exception interne brute ne remonte au client.
"""
from typing import Any, Dict, Optional


class CheckoutError(Exception):
    code = "CheckoutError"
    status_code = 400
    default_message = "Erreur de checkout"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CheckoutError):
    """Requête mal formée (adresse incomplète, référence de paiement absente...)."""
    code = "ValidationError"
    status_code = 400
    default_message = "Requête invalide"


class PaymentNotCompleted(CheckoutError):
    """Le paiement n'est pas (encore) au statut 'succeeded' chez la passerelle."""
    code = "PaymentNotCompleted"
    status_code = 400
    default_message = "Paiement non confirmé"


class EmptyCart(CheckoutError):
    code = "EmptyCart"
    status_code = 400
    default_message = "Le panier est vide"


class PaymentOwnershipMismatch(CheckoutError):
    """Le paiement (ou la commande existante) appartient à un autre utilisateur."""
    code = "PaymentOwnershipMismatch"
    status_code = 403
    default_message = "Paiement appartenant à un autre utilisateur"


class AmountMismatch(CheckoutError):
    """Le montant capturé diverge du total recalculé côté serveur."""
    code = "AmountMismatch"
    status_code = 409
    default_message = "Montant capturé différent du total de la commande"


class StockUnavailable(CheckoutError):
    code = "StockUnavailable"
    status_code = 409
    default_message = "Stock insuffisant"


class PersistenceFailure(CheckoutError):
    """Panne d'infrastructure (Supabase injoignable, écriture rejetée). Réessayable avec la même référence."""
    code = "PersistenceFailure"
    status_code = 500
    default_message = "Erreur de persistance, veuillez réessayer"


class CheckoutInProgress(PersistenceFailure):
    """Une tentative récente avec la même référence de paiement est encore en cours."""
    code = "CheckoutInProgress"
    status_code = 409
    default_message = "Commande en cours de traitement, veuillez réessayer"


class GatewayError(CheckoutError):
    code = "GatewayError"
    status_code = 500
    default_message = "Erreur de la passerelle de paiement"


class NotFound(CheckoutError):
    code = "NotFound"
    status_code = 404
    default_message = "Ressource introuvable"


class DuplicatePaymentReference(Exception):
    """Levée par un OrderLedger quand une commande existe déjà pour cette référence de paiement."""

    def __init__(self, payment_reference: str):
        self.payment_reference = payment_reference
        super().__init__(f"Commande déjà existante pour payment_reference={payment_reference}")
