"""
Admin session state on the client.

The stored ``{admin, token, expiresAt}`` record is only a hint: ``validate``
always asks the server, and every privileged call carries the token so the
server can check it again.
"""
import json
import logging
from typing import Any, Dict, Optional

from bikefine.client.api import ApiClient, ApiError
from bikefine.client.storage import LocalStorage
from bikefine.utils.dates import parse_datetime, utcnow

logger = logging.getLogger(__name__)

ADMIN_AUTH_KEY = "adminAuth"


class AdminSessionStore:
    def __init__(self, api: ApiClient, storage: LocalStorage):
        self.api = api
        self.storage = storage

    def _load(self) -> Optional[Dict[str, Any]]:
        raw = self.storage.get_item(ADMIN_AUTH_KEY)
        if not raw:
            return None
        try:
            auth = json.loads(raw)
            expires_at = parse_datetime(auth["expiresAt"])
        except (ValueError, KeyError, TypeError):
            expires_at = None

        if expires_at is None:
            logger.warning("Discarding unreadable admin session")
            self.clear()
            return None

        if expires_at < utcnow():
            self.clear()
            return None
        return auth

    def _save(self, admin: Dict[str, Any], token: str, expires_at: str):
        self.storage.set_item(ADMIN_AUTH_KEY, json.dumps({
            "isAuthenticated": True,
            "admin": admin,
            "token": token,
            "expiresAt": expires_at,
        }))
        self.api.token = token

    def clear(self):
        self.storage.remove_item(ADMIN_AUTH_KEY)
        self.api.token = None

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        data = await self.api.post("/api/admin/auth", json={"email": email, "password": password})
        session = data["session"]
        self._save(data["admin"], session["token"], session["expiresAt"])
        return data["admin"]

    def current_admin(self) -> Optional[Dict[str, Any]]:
        auth = self._load()
        return auth["admin"] if auth else None

    def is_authenticated(self) -> bool:
        return self.current_admin() is not None

    async def validate(self) -> Optional[Dict[str, Any]]:
        """Check the stored session locally, then with the server."""
        auth = self._load()
        if not auth:
            return None

        try:
            data = await self.api.post("/api/admin/validate", json={"token": auth["token"]})
        except ApiError as e:
            logger.info("Admin session rejected by server: %s", e.message)
            self.clear()
            return None

        self._save(data["admin"], auth["token"], data["session"]["expiresAt"])
        return data["admin"]

    async def logout(self) -> bool:
        """Invalidate on the server; local state is cleared either way."""
        auth = self._load()
        if not auth:
            self.clear()
            return True

        try:
            await self.api.delete("/api/admin/auth", params={"token": auth["token"]})
            return True
        except ApiError as e:
            logger.info("Admin logout failed on server: %s", e.message)
            return False
        finally:
            self.clear()

    @staticmethod
    def has_permission(admin: Optional[Dict[str, Any]], resource: str, action: str) -> bool:
        if not admin:
            return False
        if admin.get("role") == "super_admin":
            return True
        for permission in admin.get("permissions") or []:
            if permission.get("resource") == resource and action in (permission.get("actions") or []):
                return True
        return False
