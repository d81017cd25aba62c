"""
Test cases for the authentication endpoints and the token header dependency.
"""
import pytest
from fastapi import Depends, Request

from ctpga_manager.auth.jwt import Principal, SigningError, TokenIssuer, get_token_issuer
from ctpga_manager.auth.middleware import ADMIN_ROLES, RBACMiddleware, get_current_user, has_role


NO_TOKEN = {"msg": "No hay token, autorización denegada"}
INVALID_TOKEN = {"msg": "Token no válido"}


class _FailingIssuer(TokenIssuer):
    def issue(self, principal):
        raise SigningError("signing backend unavailable")


@pytest.fixture
def app_with_echo(app):
    """App with an extra route echoing the principal attached to the request."""
    @app.get("/echo")
    async def echo(request: Request, principal: Principal = Depends(get_current_user)):
        return {"state": request.state.user.model_dump(), "principal": principal.model_dump()}

    @app.get("/echo/admin")
    async def echo_admin(principal: Principal = Depends(RBACMiddleware.has_roles(ADMIN_ROLES))):
        return principal.model_dump()

    return app


@pytest.mark.asyncio
async def test_root_and_health(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "CTPGA Manager API"

    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_token_is_rejected(app_with_echo, client):
    response = await client.get("/echo")

    assert response.status_code == 401
    assert response.json() == NO_TOKEN


@pytest.mark.asyncio
async def test_empty_token_is_rejected(app_with_echo, client):
    response = await client.get("/echo", headers={"x-auth-token": ""})

    assert response.status_code == 401
    assert response.json() == NO_TOKEN


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["garbage", "invalid.token.here"])
async def test_malformed_token_is_rejected(app_with_echo, client, token):
    response = await client.get("/echo", headers={"x-auth-token": token})

    assert response.status_code == 401
    assert response.json() == INVALID_TOKEN


@pytest.mark.asyncio
async def test_expired_token_is_rejected(app_with_echo, client, expired_token):
    response = await client.get("/echo", headers={"x-auth-token": expired_token})

    assert response.status_code == 401
    assert response.json() == INVALID_TOKEN


@pytest.mark.asyncio
async def test_token_signed_with_other_secret_is_rejected(app_with_echo, client, settings):
    token = TokenIssuer(secret="not-" + settings.jwt_secret).issue(Principal(id="1", role="admin"))

    response = await client.get("/echo", headers={"x-auth-token": token})

    assert response.status_code == 401
    assert response.json() == INVALID_TOKEN


@pytest.mark.asyncio
async def test_valid_token_attaches_principal(app_with_echo, client, issuer):
    token = issuer.issue(Principal(id="user-42", role="instructor"))

    response = await client.get("/echo", headers={"x-auth-token": token})

    assert response.status_code == 200
    expected = {"id": "user-42", "role": "instructor"}
    assert response.json() == {"state": expected, "principal": expected}


@pytest.mark.asyncio
async def test_role_dependency(app_with_echo, client, issuer):
    instructor = {"x-auth-token": issuer.issue(Principal(id="1", role="instructor"))}
    admin = {"x-auth-token": issuer.issue(Principal(id="2", role="admin"))}

    response = await client.get("/echo/admin", headers=instructor)
    assert response.status_code == 403
    assert response.json() == {"msg": "Acceso denegado"}

    response = await client.get("/echo/admin", headers=admin)
    assert response.status_code == 200
    assert response.json() == {"id": "2", "role": "admin"}

    response = await client.get("/echo/admin")
    assert response.status_code == 401
    assert response.json() == NO_TOKEN


def test_has_role():
    admin = Principal(id="1", role="admin")
    instructor = Principal(id="2", role="instructor")

    assert has_role(admin, ADMIN_ROLES)
    assert has_role(admin, ["admin"])
    assert not has_role(instructor, ADMIN_ROLES)
    assert not has_role(instructor, [])


@pytest.mark.asyncio
async def test_login_and_current_user(client, make_user, password):
    user = await make_user(role="admin", area="Ciencias", email="admin@example.com")

    response = await client.post("/api/auth", json={"email": "admin@example.com", "password": password})

    assert response.status_code == 200
    data = response.json()
    assert data["user"] == {
        "id": user.id,
        "name": user.name,
        "email": "admin@example.com",
        "role": "admin",
        "area": "Ciencias",
    }

    me = await client.get("/api/auth", headers={"x-auth-token": data["token"]})
    assert me.status_code == 200
    assert me.json()["id"] == user.id
    assert me.json()["is_online"] is True
    assert "hashed_password" not in me.json()


@pytest.mark.asyncio
async def test_login_with_wrong_password(client, make_user):
    await make_user(email="someone@example.com")

    response = await client.post("/api/auth", json={"email": "someone@example.com", "password": "wrong-password"})

    assert response.status_code == 400
    assert response.json() == {"msg": "Credenciales inválidas"}


@pytest.mark.asyncio
async def test_login_with_unknown_email(client, password):
    response = await client.post("/api/auth", json={"email": "nobody@example.com", "password": password})

    assert response.status_code == 400
    assert response.json() == {"msg": "Credenciales inválidas"}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["pending", "rejected"])
async def test_login_requires_active_account(client, make_user, password, status):
    await make_user(status=status, email=f"{status}@example.com")

    response = await client.post("/api/auth", json={"email": f"{status}@example.com", "password": password})

    assert response.status_code == 401
    assert response.json() == {"msg": "Su cuenta está pendiente de aprobación o ha sido rechazada"}


@pytest.mark.asyncio
async def test_login_validation_errors(client):
    response = await client.post("/api/auth", json={"email": "not-an-email"})

    assert response.status_code == 400
    params = {error["param"] for error in response.json()["errors"]}
    assert {"email", "password"} <= params


@pytest.mark.asyncio
async def test_logout_marks_user_offline(client, make_user, auth_headers):
    user = await make_user()
    headers = auth_headers(user)

    response = await client.post("/api/auth/logout", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"msg": "Sesión cerrada correctamente"}
    me = await client.get("/api/auth", headers=headers)
    assert me.json()["is_online"] is False


@pytest.mark.asyncio
async def test_current_user_not_found(client, issuer):
    headers = {"x-auth-token": issuer.issue(Principal(id="missing", role="admin"))}

    response = await client.get("/api/auth", headers=headers)

    assert response.status_code == 404
    assert response.json() == {"msg": "Usuario no encontrado"}


@pytest.mark.asyncio
async def test_refresh_from_body(client, issuer):
    token = issuer.issue(Principal(id=1, role="admin"))

    response = await client.post("/api/auth/refresh", json={"token": token})

    assert response.status_code == 200
    new_token = response.json()["token"]
    assert new_token != token
    assert issuer.verify(new_token).model_dump() == {"id": 1, "role": "admin"}


@pytest.mark.asyncio
async def test_refresh_from_header(client, issuer):
    token = issuer.issue(Principal(id="abc", role="instructor"))

    response = await client.post("/api/auth/refresh", headers={"x-auth-token": token})

    assert response.status_code == 200
    assert issuer.verify(response.json()["token"]) == Principal(id="abc", role="instructor")


@pytest.mark.asyncio
async def test_refresh_body_takes_precedence_over_header(client, issuer):
    body_token = issuer.issue(Principal(id="body", role="admin"))

    response = await client.post(
        "/api/auth/refresh",
        json={"token": body_token},
        headers={"x-auth-token": "garbage"},
    )

    assert response.status_code == 200
    assert issuer.verify(response.json()["token"]).id == "body"


@pytest.mark.asyncio
async def test_refresh_without_token(client):
    response = await client.post("/api/auth/refresh")
    assert response.status_code == 401
    assert response.json() == NO_TOKEN

    response = await client.post("/api/auth/refresh", json={})
    assert response.status_code == 401
    assert response.json() == NO_TOKEN


@pytest.mark.asyncio
async def test_refresh_rejects_invalid_and_expired_tokens(client, expired_token):
    response = await client.post("/api/auth/refresh", json={"token": "invalid.token.here"})
    assert response.status_code == 401
    assert response.json() == INVALID_TOKEN

    response = await client.post("/api/auth/refresh", json={"token": expired_token})
    assert response.status_code == 401
    assert response.json() == INVALID_TOKEN


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [123, ["a.b.c"], {"user": "admin"}, True])
async def test_refresh_rejects_non_string_token(client, token):
    response = await client.post("/api/auth/refresh", json={"token": token})

    assert response.status_code == 401
    assert response.json() == INVALID_TOKEN


@pytest.mark.asyncio
async def test_refresh_signing_failure_is_server_error(app, client, issuer, settings):
    token = issuer.issue(Principal(id="1", role="admin"))
    app.dependency_overrides[get_token_issuer] = lambda: _FailingIssuer(secret=settings.jwt_secret)

    response = await client.post("/api/auth/refresh", json={"token": token})

    assert response.status_code == 500
    assert response.text == "Error del servidor"
    assert "signing backend" not in response.text
