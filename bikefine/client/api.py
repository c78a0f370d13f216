"""Async client for the REST API, plus a small stateful fetch helper."""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


def _clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {key: value for key, value in (params or {}).items() if value is not None}


class ApiClient:
    """
    Thin wrapper over ``httpx.AsyncClient`` that unwraps the response envelope.

    Args:
        - base_url (str): Server root, e.g. ``http://localhost:8000``.
        - token (Optional[str]): Admin session token sent as a bearer header.
        - transport (Optional[httpx.AsyncBaseTransport]): Custom transport, used by tests.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.token = token
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {}) or {}
        if self.token:
            headers.setdefault("Authorization", f"Bearer {self.token}")
        if "params" in kwargs:
            kwargs["params"] = _clean_params(kwargs["params"])

        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Request %s %s failed: %s", method, path, e)
            raise ApiError(0, str(e)) from e

        try:
            body = response.json()
        except ValueError:
            raise ApiError(response.status_code, "Invalid response from server")

        if not body.get("success"):
            raise ApiError(response.status_code, body.get("error") or "API call failed")
        return body.get("data")

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def delete(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("DELETE", path, params=params)

    # Riders
    async def list_users(self, page: int = 1, limit: int = 10, **filters):
        return await self.get("/api/users", params={"page": page, "limit": limit, **filters})

    async def get_user(self, user_id: str):
        return await self.get(f"/api/users/{user_id}")

    async def create_user(self, data: Dict[str, Any]):
        return await self.post("/api/users", json=data)

    async def update_user(self, user_id: str, data: Dict[str, Any]):
        return await self.put(f"/api/users/{user_id}", json=data)

    async def delete_user(self, user_id: str):
        return await self.delete(f"/api/users/{user_id}")

    async def get_user_violations(self, user_id: str):
        return await self.get("/api/users/violations", params={"userId": user_id})

    # Cases
    async def list_cases(self, page: int = 1, limit: int = 10, **filters):
        return await self.get("/api/cases", params={"page": page, "limit": limit, **filters})

    async def get_case(self, case_id: str):
        return await self.get(f"/api/cases/{case_id}")

    async def create_case(self, data: Dict[str, Any]):
        return await self.post("/api/cases", json=data)

    async def update_case(self, case_id: str, data: Dict[str, Any]):
        return await self.put(f"/api/cases/{case_id}", json=data)

    async def delete_case(self, case_id: str):
        return await self.delete(f"/api/cases/{case_id}")

    # Queries
    async def list_queries(self, page: int = 1, limit: int = 10, **filters):
        return await self.get("/api/queries", params={"page": page, "limit": limit, **filters})

    async def get_query(self, query_id: str):
        return await self.get(f"/api/queries/{query_id}")

    async def create_query(self, data: Dict[str, Any]):
        return await self.post("/api/queries", json=data)

    async def update_query(self, query_id: str, data: Dict[str, Any]):
        return await self.put(f"/api/queries/{query_id}", json=data)

    async def delete_query(self, query_id: str):
        return await self.delete(f"/api/queries/{query_id}")

    async def get_responses(self, query_id: str):
        return await self.get("/api/queries/responses", params={"queryId": query_id})

    async def create_response(self, data: Dict[str, Any]):
        return await self.post("/api/queries/responses", json=data)

    # Payments and stats
    async def create_payment(self, data: Dict[str, Any]):
        return await self.post("/api/payments", json=data)

    async def get_stats(self, stat_type: str = "all"):
        return await self.get("/api/stats", params={"type": stat_type})

    # Admin
    async def list_violations(self, page: int = 1, limit: int = 10, **filters):
        return await self.get("/api/admin/violations", params={"page": page, "limit": limit, **filters})

    async def file_violation(self, data: Dict[str, Any]):
        return await self.post("/api/admin/violations", json=data)

    async def search_users(self, number_plate: Optional[str] = None, search: Optional[str] = None):
        return await self.get("/api/admin/users/search", params={"numberPlate": number_plate, "search": search})

    async def admin_user_stats(self):
        return await self.get("/api/admin/users/stats")

    async def attach_evidence(self, case_id: str, filename: str, content: bytes, content_type: str):
        return await self.post(
            "/api/admin/cases/attach",
            data={"caseId": case_id},
            files={"file": (filename, content, content_type)},
        )


class Resource:
    """
    Tracks ``loading``, ``error`` and ``data`` for one fetch function.

    ``load`` re-fetches only when the parameters differ from the last call,
    unless ``force`` is set.
    """

    def __init__(self, fetch: Callable[..., Awaitable[Any]]):
        self.fetch = fetch
        self.loading = False
        self.error: Optional[str] = None
        self.data: Any = None
        self._params: Optional[Dict[str, Any]] = None

    async def load(self, force: bool = False, **params) -> Any:
        if not force and self._params == params and self.data is not None:
            return self.data

        self.loading = True
        self.error = None
        try:
            self.data = await self.fetch(**params)
            self._params = params
            return self.data
        except ApiError as e:
            self.error = e.message
            raise
        finally:
            self.loading = False

    async def refetch(self) -> Any:
        return await self.load(force=True, **(self._params or {}))
