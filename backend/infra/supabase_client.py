from typing import Any, Optional
from supabase import create_client, Client
from postgrest.exceptions import APIError
from backend.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

UNIQUE_VIOLATION = "23505"

_supabase: Optional[Client] = None
_service_supabase: Optional[Client] = None

def get_supabase() -> Client:
    global _supabase
    if _supabase is None:
        _supabase = create_client(SUPABASE_URL, SUPABASE_ANON)
    return _supabase

def get_service_supabase() -> Client:
    """
    Client service-role (bypass RLS): utilisé pour les écritures du checkout
    (commandes, stock, panier) qui ne doivent pas dépendre des policies utilisateur.
    """
    global _service_supabase
    if not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _service_supabase

def api_error_code(e: Exception) -> Optional[str]:
    """Code Postgres/PostgREST d'une APIError (ex: '23505' pour violation d'unicité), None sinon."""
    if not isinstance(e, APIError):
        return None
    code: Any = getattr(e, "code", None)
    if not code and e.args and isinstance(e.args[0], dict):
        code = e.args[0].get("code")
    return str(code) if code else None
