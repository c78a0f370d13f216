import json
import logging
from typing import Any, Dict, Optional

from bikefine.client.api import ApiClient, ApiError
from bikefine.client.storage import LocalStorage
from bikefine.utils.dates import utcnow

logger = logging.getLogger(__name__)

AUTH_KEY = "auth"


def normalize_user(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Fill ``name`` from first/last name and vice versa."""
    name = raw.get("name") or f"{raw.get('firstName') or ''} {raw.get('lastName') or ''}".strip()
    first_name, _, last_name = (name or "").partition(" ")
    return {
        "id": raw.get("id"),
        "email": raw.get("email"),
        "name": name or None,
        "firstName": first_name or None,
        "lastName": last_name or None,
    }


class AuthContext:
    """Rider sign-in state kept in local storage under ``auth``."""

    def __init__(self, api: ApiClient, storage: LocalStorage):
        self.api = api
        self.storage = storage
        self.user: Optional[Dict[str, Any]] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def restore(self) -> Optional[Dict[str, Any]]:
        raw = self.storage.get_item(AUTH_KEY)
        if not raw:
            return None
        try:
            auth = json.loads(raw)
            if auth.get("isAuthenticated") and auth.get("user"):
                self.user = normalize_user(auth["user"])
        except (ValueError, AttributeError, TypeError):
            logger.warning("Error parsing stored auth data, clearing it")
            self.storage.remove_item(AUTH_KEY)
            self.user = None
        return self.user

    def remember(self, user: Dict[str, Any]) -> Dict[str, Any]:
        self.user = normalize_user(user)
        self.storage.set_item(AUTH_KEY, json.dumps({
            "isAuthenticated": True,
            "user": self.user,
            "loginTime": utcnow().isoformat() + "Z",
        }))
        return self.user

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Sign in against the server; raises ApiError on bad credentials"""
        user = await self.api.post("/api/auth/login", json={"email": email, "password": password})
        return self.remember(user)

    async def logout(self):
        try:
            await self.api.post("/api/auth/logout")
        except ApiError as e:
            logger.info("Server logout failed: %s", e.message)
        self.storage.remove_item(AUTH_KEY)
        self.user = None

    async def verify(self) -> bool:
        """Confirm the stored user with the server's cookie session"""
        try:
            user = await self.api.get("/api/auth/me")
        except ApiError:
            self.storage.remove_item(AUTH_KEY)
            self.user = None
            return False
        self.remember(user)
        return True
