"""
tests/test_users_api.py -- Integration tests for /api/v1/users.

Coverage:
  - Role gate on listing and mutations (401 / 403)
  - Listing: offset/limit slice, total, search, role filter, invalid filters
  - Count endpoint
  - Create: 201, duplicates 409, short password 400, unknown department 404
  - Ban / unban: reason required, self-ban refused, banned user cannot log in
  - Role: last admin cannot be demoted
  - Password reset, department assignment, 404 for unknown users

Fixtures used (from conftest.py):
  - api_client: ApiContext with admin (id admin_id) and alice (id user_id)
"""

from __future__ import annotations

from conftest import ApiContext

USER_RECORD_KEYS = (
    "id",
    "name",
    "email",
    "username",
    "role",
    "banned",
    "banReason",
    "banExpires",
    "departmentId",
    "department",
    "createdAt",
    "updatedAt",
)


def _create_user(ctx: ApiContext, name: str, **extra) -> dict:
    body = {"name": name, "email": f"{name.lower().replace(' ', '.')}@example.com", "password": "secret1"}
    body.update(extra)
    resp = ctx.client.post("/api/v1/users", json=body, headers=ctx.admin_headers)
    assert resp.status_code == 201, f"create {name!r} failed: {resp.status_code} {resp.text}"
    return resp.json()


class TestUserRoleGate:
    ROUTES = [
        ("GET", "/api/v1/users"),
        ("GET", "/api/v1/users/count"),
        ("POST", "/api/v1/users"),
        ("POST", "/api/v1/users/1/ban"),
        ("POST", "/api/v1/users/1/unban"),
        ("POST", "/api/v1/users/1/role"),
        ("POST", "/api/v1/users/1/password"),
        ("PUT", "/api/v1/users/1/department"),
    ]

    def test_unauthenticated_is_401(self, api_client: ApiContext) -> None:
        for method, path in self.ROUTES:
            resp = api_client.client.request(method, path, json={})
            assert resp.status_code == 401, f"{method} {path}: expected 401, got {resp.status_code}"

    def test_non_admin_is_403(self, api_client: ApiContext) -> None:
        for method, path in self.ROUTES:
            resp = api_client.client.request(method, path, json={}, headers=api_client.user_headers)
            assert resp.status_code == 403, f"{method} {path}: expected 403, got {resp.status_code}"
            assert resp.json()["code"] == "forbidden"


class TestLastAdmin:
    """Runs before any other admin exists in this module."""

    def test_demoting_the_only_admin_is_refused(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            f"/api/v1/users/{api_client.admin_id}/role", json={"role": "user"}, headers=api_client.admin_headers
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "last_admin"

    def test_demoting_an_admin_is_allowed_when_another_remains(self, api_client: ApiContext) -> None:
        second = _create_user(api_client, "Second Admin", role="admin")
        resp = api_client.client.post(
            f"/api/v1/users/{second['id']}/role", json={"role": "user"}, headers=api_client.admin_headers
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "user"

    def test_unknown_role_is_400(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            f"/api/v1/users/{api_client.user_id}/role", json={"role": "root"}, headers=api_client.admin_headers
        )
        assert resp.status_code == 400


class TestUserListing:
    def test_second_page_of_twenty_five(self, api_client: ApiContext) -> None:
        """limit=10 offset=10 over 25 matches returns items 11-20, newest first."""
        for i in range(1, 26):
            _create_user(api_client, f"Bulk {i:02d}")
        resp = api_client.client.get(
            "/api/v1/users",
            params={"searchValue": "bulk", "searchField": "name", "limit": 10, "offset": 10},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 25
        assert (body["limit"], body["offset"], body["page"], body["totalPages"]) == (10, 10, 2, 3)
        assert [r["name"] for r in body["records"]] == [f"Bulk {i:02d}" for i in range(15, 5, -1)]

    def test_record_shape_is_camel_case(self, api_client: ApiContext) -> None:
        params = {"searchValue": "alice", "searchField": "username"}
        body = api_client.client.get("/api/v1/users", params=params, headers=api_client.admin_headers).json()
        record = body["records"][0]
        for key in USER_RECORD_KEYS:
            assert key in record, f"missing {key}"
        assert "hashed_password" not in record and "hashedPassword" not in record

    def test_role_filter(self, api_client: ApiContext) -> None:
        body = api_client.client.get(
            "/api/v1/users",
            params={"filterField": "role", "filterValue": "admin", "filterOperator": "eq", "limit": 100},
            headers=api_client.admin_headers,
        ).json()
        assert body["records"], "expected at least the fixture admin"
        assert all(r["role"] == "admin" for r in body["records"])
        assert body["total"] == len(body["records"])

    def test_unknown_search_field_is_ignored(self, api_client: ApiContext) -> None:
        headers = api_client.admin_headers
        unfiltered = api_client.client.get("/api/v1/users", headers=headers).json()["total"]
        resp = api_client.client.get(
            "/api/v1/users", params={"searchValue": "x", "searchField": "nope"}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["total"] == unfiltered

    def test_invalid_filters_are_400(self, api_client: ApiContext) -> None:
        for params in (
            {"filterField": "hashed_password", "filterValue": "x"},
            {"filterField": "role", "filterValue": "admin", "filterOperator": "regex"},
            {"filterField": "banned", "filterValue": "sometimes"},
        ):
            resp = api_client.client.get("/api/v1/users", params=params, headers=api_client.admin_headers)
            assert resp.status_code == 400, f"{params}: expected 400, got {resp.status_code}"
            assert resp.json()["code"] == "invalid_filter"

    def test_count_matches_unfiltered_total(self, api_client: ApiContext) -> None:
        headers = api_client.admin_headers
        count = api_client.client.get("/api/v1/users/count", headers=headers).json()["count"]
        assert count == api_client.client.get("/api/v1/users", headers=headers).json()["total"]


class TestUserCreate:
    def test_create_with_department(self, api_client: ApiContext) -> None:
        dept = api_client.client.post(
            "/api/v1/departments", json={"name": "Hiring"}, headers=api_client.admin_headers
        ).json()
        user = _create_user(api_client, "Grace", username="grace", departmentId=dept["id"])
        assert user["role"] == "user"
        assert user["banned"] is False
        assert user["departmentId"] == dept["id"]
        assert user["department"] == {"id": dept["id"], "name": "Hiring"}

    def test_duplicate_email_is_409(self, api_client: ApiContext) -> None:
        _create_user(api_client, "Linus")
        resp = api_client.client.post(
            "/api/v1/users",
            json={"name": "Linus Again", "email": "LINUS@example.com", "password": "secret1"},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 409

    def test_short_password_is_400(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/users",
            json={"name": "Shorty", "email": "shorty@example.com", "password": "12345"},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_malformed_email_is_400(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/users",
            json={"name": "Nomail", "email": "not-an-email", "password": "secret1"},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 400

    def test_unknown_department_is_404(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/users",
            json={"name": "Lost", "email": "lost@example.com", "password": "secret1", "departmentId": 99999},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 404

    def test_password_over_72_bytes_is_400(self, api_client: ApiContext) -> None:
        """bcrypt cannot hash more than 72 bytes, so longer passwords are rejected up front."""
        resp = api_client.client.post(
            "/api/v1/users",
            json={"name": "Verbose", "email": "verbose@example.com", "password": "p" * 100},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 400, f"Expected 400, got {resp.status_code}: {resp.text}"
        assert resp.json()["code"] == "validation_error"

    def test_multibyte_password_counts_bytes(self, api_client: ApiContext) -> None:
        """40 characters of two-byte text is 80 bytes and over the limit."""
        resp = api_client.client.post(
            "/api/v1/users",
            json={"name": "Multi", "email": "multi@example.com", "password": "é" * 40},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 400

    def test_password_of_exactly_72_bytes_is_accepted(self, api_client: ApiContext) -> None:
        _create_user(api_client, "Edge Case", password="p" * 72)


class TestBanLifecycle:
    def test_ban_then_unban(self, api_client: ApiContext) -> None:
        client, headers = api_client.client, api_client.admin_headers
        user = _create_user(api_client, "Mallory", username="mallory")

        resp = client.post(
            f"/api/v1/users/{user['id']}/ban", json={"banReason": "spam", "banExpiresIn": 3600}, headers=headers
        )
        assert resp.status_code == 200
        banned = resp.json()
        assert banned["banned"] is True
        assert banned["banReason"] == "spam"
        assert banned["banExpires"] is not None

        login = client.post("/api/v1/auth/login", json={"username": "mallory", "password": "secret1"})
        assert login.status_code == 401, "banned users must not be able to log in"

        resp = client.post(f"/api/v1/users/{user['id']}/unban", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["banned"] is False
        assert resp.json()["banReason"] is None

        login = client.post("/api/v1/auth/login", json={"username": "mallory", "password": "secret1"})
        assert login.status_code == 200
        client.cookies.clear()

    def test_ban_requires_reason(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            f"/api/v1/users/{api_client.user_id}/ban", json={"banReason": "  "}, headers=api_client.admin_headers
        )
        assert resp.status_code == 400

    def test_ban_expiry_must_be_positive(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            f"/api/v1/users/{api_client.user_id}/ban",
            json={"banReason": "x", "banExpiresIn": 0},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 400

    def test_ban_expiry_is_capped(self, api_client: ApiContext) -> None:
        """An expiry far past the datetime range is a validation error, not a 500."""
        resp = api_client.client.post(
            f"/api/v1/users/{api_client.user_id}/ban",
            json={"banReason": "spam", "banExpiresIn": 10**12},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 400, f"Expected 400, got {resp.status_code}: {resp.text}"
        assert resp.json()["code"] == "validation_error"

    def test_admin_cannot_ban_self(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            f"/api/v1/users/{api_client.admin_id}/ban", json={"banReason": "oops"}, headers=api_client.admin_headers
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "self_ban"


class TestPasswordAndDepartment:
    def test_password_reset_allows_login_with_new_password(self, api_client: ApiContext) -> None:
        client = api_client.client
        user = _create_user(api_client, "Reset Me", username="resetme")
        resp = client.post(
            f"/api/v1/users/{user['id']}/password", json={"newPassword": "brandnew"}, headers=api_client.admin_headers
        )
        assert resp.status_code == 200
        old = client.post("/api/v1/auth/login", json={"username": "resetme", "password": "secret1"})
        new = client.post("/api/v1/auth/login", json={"username": "resetme", "password": "brandnew"})
        assert (old.status_code, new.status_code) == (401, 200)
        client.cookies.clear()

    def test_short_new_password_is_400(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            f"/api/v1/users/{api_client.user_id}/password",
            json={"newPassword": "123"},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 400

    def test_new_password_over_72_bytes_is_400(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            f"/api/v1/users/{api_client.user_id}/password",
            json={"newPassword": "p" * 73},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_assign_unknown_department_is_404(self, api_client: ApiContext) -> None:
        resp = api_client.client.put(
            f"/api/v1/users/{api_client.user_id}/department",
            json={"departmentId": 99999},
            headers=api_client.admin_headers,
        )
        assert resp.status_code == 404

    def test_unknown_user_is_404_everywhere(self, api_client: ApiContext) -> None:
        client, headers = api_client.client, api_client.admin_headers
        calls = [
            ("POST", "/api/v1/users/99999/ban", {"banReason": "x"}),
            ("POST", "/api/v1/users/99999/unban", None),
            ("POST", "/api/v1/users/99999/role", {"role": "user"}),
            ("POST", "/api/v1/users/99999/password", {"newPassword": "secret1"}),
            ("PUT", "/api/v1/users/99999/department", {"departmentId": None}),
        ]
        for method, path, body in calls:
            resp = client.request(method, path, json=body, headers=headers)
            assert resp.status_code == 404, f"{method} {path}: expected 404, got {resp.status_code}"
            assert resp.json()["code"] == "not_found"
