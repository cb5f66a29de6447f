"""
client/admin.py -- HTTP client for the OrgDesk admin API.

AdminClient wraps one requests.Session per client so the auth header and
connection pool are shared across calls. Every method maps to exactly one
endpoint and returns the decoded JSON body. Non-2xx responses raise
AdminClientError carrying the status and the server's error code, so callers
can tell 401 unauthorized from 403 forbidden without parsing text.

load_users_page / load_departments_page drive one request/response cycle of
a list page: LoadStarted -> request built from the state -> LoadSucceeded or
LoadFailed. They are the only place the client and core.page_state meet.

Usage:
    client = AdminClient("http://localhost:8000", token)
    page = client.list_users(searchValue="ada", searchField="name", limit=10)
    client.ban_user(page["records"][0]["id"], "spam", ban_expires_in=3600)
"""

import logging
from typing import Any, Optional

import requests

from core.page_state import (
    ListPageState,
    LoadFailed,
    LoadStarted,
    LoadSucceeded,
    department_query,
    reduce,
    user_query,
)

logger = logging.getLogger("orgdesk.client")

_API_PREFIX = "/api/v1"


class AdminClientError(Exception):
    """A non-2xx response from the admin API, or a transport failure (status 0)."""

    def __init__(self, status: int, code: str, message: str) -> None:
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message


class AdminClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.max_redirects = 3
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{_API_PREFIX}{path}"
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise AdminClientError(0, "transport_error", str(exc)) from exc

        if resp.ok:
            return resp.json()

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        raise AdminClientError(
            resp.status_code,
            body.get("code") or f"http_{resp.status_code}",
            body.get("error") or resp.reason or "",
        )

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self, **params: Any) -> dict:
        """GET /users. params are passed through as query parameters
        (searchValue, searchField, filterField, filterValue, filterOperator,
        limit, offset)."""
        return self._request("GET", "/users", params=params)

    def count_users(self) -> int:
        return self._request("GET", "/users/count")["count"]

    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: str = "user",
        username: Optional[str] = None,
        department_id: Optional[int] = None,
    ) -> dict:
        body: dict[str, Any] = {"name": name, "email": email, "password": password, "role": role}
        if username:
            body["username"] = username
        if department_id is not None:
            body["departmentId"] = department_id
        return self._request("POST", "/users", json=body)

    def ban_user(self, user_id: int, reason: str, ban_expires_in: Optional[int] = None) -> dict:
        body: dict[str, Any] = {"banReason": reason}
        if ban_expires_in is not None:
            body["banExpiresIn"] = ban_expires_in
        return self._request("POST", f"/users/{user_id}/ban", json=body)

    def unban_user(self, user_id: int) -> dict:
        return self._request("POST", f"/users/{user_id}/unban")

    def set_role(self, user_id: int, role: str) -> dict:
        return self._request("POST", f"/users/{user_id}/role", json={"role": role})

    def set_user_password(self, user_id: int, new_password: str) -> dict:
        return self._request("POST", f"/users/{user_id}/password", json={"newPassword": new_password})

    def assign_department(self, user_id: int, department_id: Optional[int]) -> dict:
        """Attach the user to a department; None detaches."""
        return self._request("PUT", f"/users/{user_id}/department", json={"departmentId": department_id})

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    def list_departments(self, **params: Any) -> dict:
        """GET /departments with page, limit and search query parameters."""
        return self._request("GET", "/departments", params=params)

    def get_department(self, dept_id: int) -> dict:
        return self._request("GET", f"/departments/{dept_id}")

    def create_department(self, name: str, description: Optional[str] = None) -> dict:
        return self._request("POST", "/departments", json={"name": name, "description": description})

    def update_department(self, dept_id: int, name: str, description: Optional[str] = None) -> dict:
        return self._request("PUT", f"/departments/{dept_id}", json={"name": name, "description": description})

    def delete_department(self, dept_id: int) -> dict:
        return self._request("DELETE", f"/departments/{dept_id}")


# ---------------------------------------------------------------------------
# List page drivers
# ---------------------------------------------------------------------------


def _load(state: ListPageState, fetch) -> ListPageState:
    state = reduce(state, LoadStarted())
    try:
        body = fetch()
    except AdminClientError as exc:
        return reduce(state, LoadFailed(exc.message or exc.code))
    return reduce(state, LoadSucceeded(records=tuple(body["records"]), total=body["total"]))


def load_users_page(client: AdminClient, state: ListPageState) -> ListPageState:
    """Fetch the users page described by `state` and return the next state."""
    return _load(state, lambda: client.list_users(**user_query(state)))


def load_departments_page(client: AdminClient, state: ListPageState) -> ListPageState:
    """Fetch the departments page described by `state` and return the next state."""
    return _load(state, lambda: client.list_departments(**department_query(state)))
