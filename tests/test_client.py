import json

import httpx
import pytest

from bikefine.client.admin_session import ADMIN_AUTH_KEY, AdminSessionStore
from bikefine.client.api import ApiClient, ApiError, Resource
from bikefine.client.auth import AUTH_KEY, AuthContext, normalize_user
from bikefine.client.storage import LocalStorage


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "storage.json")


@pytest.fixture
async def api(app):
    async with ApiClient("http://testserver", transport=httpx.ASGITransport(app=app)) as api:
        yield api


class TestLocalStorage:
    def test_round_trip_and_remove(self, storage):
        assert storage.get_item("missing") is None
        storage.set_item("auth", "value")
        assert storage.get_item("auth") == "value"
        storage.remove_item("auth")
        assert storage.get_item("auth") is None

    def test_unreadable_file_is_empty(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{oops")
        assert LocalStorage(path).get_item("auth") is None


class TestApiClient:
    async def test_unwraps_envelope(self, api, rider):
        user = await api.get_user(rider.id)
        assert user["email"] == "ama@example.com"

    async def test_error_raises(self, api):
        with pytest.raises(ApiError) as exc:
            await api.get_user("user-missing")
        assert exc.value.status_code == 404
        assert exc.value.message == "User not found"

    async def test_resource_refetches_on_param_change(self, api, rider):
        calls = []

        async def fetch(**params):
            calls.append(params)
            return await api.list_users(**params)

        users = Resource(fetch)
        await users.load(page=1, limit=10)
        await users.load(page=1, limit=10)
        assert len(calls) == 1
        assert users.data["total"] == 1
        assert users.loading is False

        await users.load(page=2, limit=10)
        assert len(calls) == 2
        assert users.data["data"] == []

        await users.refetch()
        assert len(calls) == 3

    async def test_resource_records_error(self, api):
        resource = Resource(api.get_case)
        with pytest.raises(ApiError):
            await resource.load(case_id="case-missing")
        assert resource.error == "Case not found"
        assert resource.loading is False


class TestAuthContext:
    def test_normalize_user_splits_name(self):
        user = normalize_user({"id": "user-1", "email": "a@example.com", "name": "Ama Serwaa Mensah"})
        assert user["firstName"] == "Ama"
        assert user["lastName"] == "Serwaa Mensah"

        user = normalize_user({"id": "user-1", "email": "a@example.com", "firstName": "Kofi", "lastName": "Boateng"})
        assert user["name"] == "Kofi Boateng"

    async def test_login_persists_and_restores(self, api, storage, rider):
        auth = AuthContext(api, storage)
        user = await auth.login("ama@example.com", "secret123")
        assert user["id"] == rider.id
        assert auth.is_authenticated

        restored = AuthContext(api, storage).restore()
        assert restored["email"] == "ama@example.com"
        assert restored["firstName"] == "Ama"

        assert await auth.verify() is True

    async def test_bad_login(self, api, storage, rider):
        auth = AuthContext(api, storage)
        with pytest.raises(ApiError) as exc:
            await auth.login("ama@example.com", "wrong-one")
        assert exc.value.status_code == 401
        assert storage.get_item(AUTH_KEY) is None

    async def test_corrupt_storage_is_cleared(self, api, storage):
        storage.set_item(AUTH_KEY, "{not json")
        assert AuthContext(api, storage).restore() is None
        assert storage.get_item(AUTH_KEY) is None

    async def test_logout_clears_storage(self, api, storage, rider):
        auth = AuthContext(api, storage)
        await auth.login("ama@example.com", "secret123")
        await auth.logout()
        assert storage.get_item(AUTH_KEY) is None
        assert not auth.is_authenticated


class TestAdminSessionStore:
    async def test_login_and_validate(self, api, storage, admin):
        store = AdminSessionStore(api, storage)
        await store.login("admin@bikeviolation.gov", "admin12345")

        assert store.is_authenticated()
        assert (await store.validate())["email"] == "admin@bikeviolation.gov"
        assert store.has_permission(store.current_admin(), "violations", "approve")

        # Token is now sent on privileged calls
        violations = await api.list_violations()
        assert violations["total"] == 0

    async def test_locally_expired_session(self, api, storage, admin):
        store = AdminSessionStore(api, storage)
        await store.login("admin@bikeviolation.gov", "admin12345")

        auth = json.loads(storage.get_item(ADMIN_AUTH_KEY))
        auth["expiresAt"] = "2000-01-01T00:00:00Z"
        storage.set_item(ADMIN_AUTH_KEY, json.dumps(auth))

        assert store.current_admin() is None
        assert storage.get_item(ADMIN_AUTH_KEY) is None

    async def test_missing_expiry_is_discarded(self, api, storage, admin):
        store = AdminSessionStore(api, storage)
        await store.login("admin@bikeviolation.gov", "admin12345")

        auth = json.loads(storage.get_item(ADMIN_AUTH_KEY))
        auth["expiresAt"] = None
        storage.set_item(ADMIN_AUTH_KEY, json.dumps(auth))

        assert store.current_admin() is None
        assert storage.get_item(ADMIN_AUTH_KEY) is None

    async def test_server_rejection_clears_local_state(self, api, storage, admin):
        store = AdminSessionStore(api, storage)
        await store.login("admin@bikeviolation.gov", "admin12345")

        auth = json.loads(storage.get_item(ADMIN_AUTH_KEY))
        auth["token"] = "admin_token_forged"
        storage.set_item(ADMIN_AUTH_KEY, json.dumps(auth))

        assert await store.validate() is None
        assert storage.get_item(ADMIN_AUTH_KEY) is None

    async def test_logout_always_clears(self, api, storage, admin):
        store = AdminSessionStore(api, storage)
        await store.login("admin@bikeviolation.gov", "admin12345")
        token = json.loads(storage.get_item(ADMIN_AUTH_KEY))["token"]

        # Session already gone on the server
        await api.delete("/api/admin/auth", params={"token": token})
        assert await store.logout() is False
        assert storage.get_item(ADMIN_AUTH_KEY) is None
        assert store.api.token is None

    def test_has_permission(self):
        support = {"role": "support", "permissions": [{"resource": "queries", "actions": ["view", "edit"]}]}
        assert AdminSessionStore.has_permission(support, "queries", "edit")
        assert not AdminSessionStore.has_permission(support, "queries", "delete")
        assert not AdminSessionStore.has_permission(support, "users", "view")
        assert not AdminSessionStore.has_permission(None, "users", "view")
