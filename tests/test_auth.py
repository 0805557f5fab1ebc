"""
Identity client and request-context tests.

HTTP is never touched: the requests.Session is a Mock returning canned
requests.Response objects.
"""
import json
from unittest import mock

import pytest
import requests

from tailordesk.auth import (
    AuthError,
    IdentityClient,
    PermissionDenied,
    RequestContext,
    require_owner,
    require_shop,
    resolve_context,
)
from tailordesk.config import AuthConfig
from tailordesk.domain import Role


def _response(status=200, body=None):
    r = requests.Response()
    r.status_code = status
    r._content = b"" if body is None else json.dumps(body).encode()
    return r


@pytest.fixture
def http():
    return mock.Mock(spec=requests.Session)


@pytest.fixture
def client(http):
    cfg = AuthConfig(url="https://auth.example.com", anon_key="anon", service_role_key="service", timeout=5)
    return IdentityClient(cfg, session=http)


class TestSignIn:
    def test_password_grant(self, client, http):
        http.request.return_value = _response(200, {"access_token": "tok", "user": {"id": "u1", "email": "a@b.c"}})

        session = client.sign_in("a@b.c", "pw")

        assert session.user_id == "u1"
        assert session.access_token == "tok"
        method, url = http.request.call_args.args
        kwargs = http.request.call_args.kwargs
        assert method == "POST"
        assert url == "https://auth.example.com/auth/v1/token"
        assert kwargs["params"] == {"grant_type": "password"}
        assert kwargs["json"] == {"email": "a@b.c", "password": "pw"}
        assert kwargs["headers"]["apikey"] == "anon"
        assert kwargs["timeout"] == 5

    def test_bad_credentials(self, client, http):
        http.request.return_value = _response(400, {"error": "invalid_grant", "error_description": "Invalid login credentials"})
        with pytest.raises(AuthError, match="Invalid login credentials"):
            client.sign_in("a@b.c", "wrong")

    def test_blank_fields(self, client, http):
        with pytest.raises(AuthError):
            client.sign_in("", "pw")
        http.request.assert_not_called()

    def test_network_failure(self, client, http):
        http.request.side_effect = requests.ConnectionError("down")
        with pytest.raises(AuthError, match="unreachable"):
            client.sign_in("a@b.c", "pw")

    def test_response_without_user(self, client, http):
        http.request.return_value = _response(200, {"access_token": "tok"})
        with pytest.raises(AuthError):
            client.sign_in("a@b.c", "pw")


class TestAdminCalls:
    def test_create_user_uses_service_key(self, client, http):
        http.request.return_value = _response(200, {"id": "new-user"})

        assert client.create_user("m@shop.com", "secret1") == "new-user"

        kwargs = http.request.call_args.kwargs
        assert kwargs["headers"]["apikey"] == "service"
        assert kwargs["headers"]["Authorization"] == "Bearer service"
        assert kwargs["json"]["email_confirm"] is True

    def test_admin_call_without_service_key(self, http):
        client = IdentityClient(AuthConfig(url="https://auth.example.com", anon_key="anon"), session=http)
        with pytest.raises(AuthError, match="service_role_key"):
            client.delete_user("u1")
        http.request.assert_not_called()

    def test_update_password_too_short(self, client, http):
        with pytest.raises(AuthError, match="at least 6"):
            client.update_password("u1", "12345")
        http.request.assert_not_called()

    def test_update_password(self, client, http):
        http.request.return_value = _response(200, {"id": "u1"})
        client.update_password("u1", "123456")
        assert http.request.call_args.args == ("PUT", "https://auth.example.com/auth/v1/admin/users/u1")

    def test_list_users(self, client, http):
        http.request.return_value = _response(200, {"users": [{"id": "u1", "email": "a@x"}, {"id": "u2"}, {"email": "no-id"}]})
        assert client.list_users() == {"u1": "a@x", "u2": ""}

    def test_delete_user_empty_body(self, client, http):
        http.request.return_value = _response(200)
        assert client.delete_user("u1") is None

    def test_error_without_json_body(self, client, http):
        r = _response(500)
        r._content = b"<html>oops</html>"
        http.request.return_value = r
        with pytest.raises(AuthError, match="HTTP 500"):
            client.list_users()


class TestRequestContext:
    def test_require_owner(self):
        owner = RequestContext("u1", "Owner", Role.OWNER, None)
        manager = RequestContext("u2", "Manager", Role.MANAGER, 3)
        assert require_owner(owner) is owner
        with pytest.raises(PermissionDenied):
            require_owner(manager)

    def test_require_shop(self):
        assert require_shop(RequestContext("u2", "Manager", Role.MANAGER, 3)) == 3
        with pytest.raises(PermissionDenied):
            require_shop(RequestContext("u1", "Owner", Role.OWNER, None))


class TestResolveContext:
    def test_profile(self, repos, conn, manager_ctx):
        ctx = resolve_context(conn, manager_ctx.user_id, profile_repo=repos.profiles, worker_repo=repos.workers)
        assert ctx == manager_ctx

    def test_worker_fallback_is_manager(self, repos, conn, shop_id, workers):
        ctx = resolve_context(conn, workers[0], profile_repo=repos.profiles, worker_repo=repos.workers)
        assert ctx.role == Role.MANAGER
        assert ctx.shop_id == shop_id
        assert ctx.full_name == "Amina"

    def test_unknown_user(self, repos, conn):
        with pytest.raises(AuthError, match="no profile"):
            resolve_context(conn, "ghost", profile_repo=repos.profiles, worker_repo=repos.workers)
