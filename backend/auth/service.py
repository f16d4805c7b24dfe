from typing import Any, Dict

from .repository import get_user_from_access_token as _repo_get_user_from_token

# --- Intégration sécurité ---

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Normalise l'utilisateur issu de supabase.auth.get_user(access_token):
    - Retourne {id, email, metadata, token}
    - L'id Supabase est la clé de propriété des paniers, paiements et commandes
    """
    raw = _repo_get_user_from_token(access_token)
    uid = raw.get("id")
    return {
        "id": str(uid) if uid else None,
        "email": raw.get("email"),
        "metadata": raw.get("user_metadata") or {},
        "token": access_token,
    }
