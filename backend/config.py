# backend.config
from decimal import Decimal
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du backend boutique.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe), sécurité cookies, CORS/hosts
- Choix des adaptateurs: stockage (supabase | memory) et passerelle de paiement (stripe | fake)
- Politique de totaux du checkout (taxe, seuil livraison gratuite, frais de port, devise)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _decimal_env(name: str, default: str) -> Decimal:
    return Decimal(_clean_env(os.getenv(name) or default))

# Supabase: URLs et clés (anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / sécurité
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clé secrète (serveur)
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")

# Adaptateurs: "supabase" en production, "memory" pour le dev local sans base
STORE_BACKEND = _clean_env(os.getenv("STORE_BACKEND") or "supabase").lower()
# "stripe" en production, "fake" pour le dev local sans clé
PAYMENT_GATEWAY = _clean_env(os.getenv("PAYMENT_GATEWAY") or "stripe").lower()

# Politique de totaux (montants en décimal fixe, jamais en float)
TAX_RATE = _decimal_env("TAX_RATE", "0.08")
FREE_SHIPPING_THRESHOLD = _decimal_env("FREE_SHIPPING_THRESHOLD", "50.00")
FLAT_SHIPPING_FEE = _decimal_env("FLAT_SHIPPING_FEE", "9.99")
CURRENCY = _clean_env(os.getenv("CURRENCY") or "usd").lower()

# Écart toléré entre le montant capturé par Stripe et le total recalculé
AMOUNT_TOLERANCE = _decimal_env("AMOUNT_TOLERANCE", "0.01")
# Tentatives pour la finalisation (vidage panier + confirmation) après ajustement du stock
CHECKOUT_FINALIZE_RETRIES = int(os.getenv("CHECKOUT_FINALIZE_RETRIES", "3"))
# Âge minimal d'une commande 'pending' avant reprise par un nouvel appel
CHECKOUT_RESUME_AFTER_SECONDS = int(os.getenv("CHECKOUT_RESUME_AFTER_SECONDS", "30"))
