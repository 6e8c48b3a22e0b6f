import pytest
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

from ticketflow.dependencies.auth import (
    CurrentUser,
    User,
    resolve_user_from_token,
    role_required,
)
from ticketflow.middleware import RBACMiddleware
from ticketflow.tickets.models import Role


@pytest.mark.asyncio
async def test_role_required_allows_authorized_user():
    dependency = role_required(Role.SUPERVISOR, Role.ADMIN)
    user = User("u-1", "alice", Role.ADMIN)
    result = await dependency(user)  # type: ignore[arg-type]
    assert result.username == "alice"


@pytest.mark.asyncio
async def test_role_required_rejects_unauthorized_user():
    dependency = role_required(Role.SUPERVISOR, Role.ADMIN)
    user = User("u-2", "bob", Role.AGENT)
    with pytest.raises(HTTPException) as exc:
        await dependency(user)  # type: ignore[arg-type]

    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"


def test_resolve_user_from_token():
    assert resolve_user_from_token(None) is None
    user = resolve_user_from_token("agent-token")
    assert user.role == Role.AGENT and user.is_staff
    assert not resolve_user_from_token("customer-token").is_staff
    with pytest.raises(HTTPException) as exc:
        resolve_user_from_token("forged")
    assert exc.value.status_code == 401


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RBACMiddleware)

    @app.get("/whoami")
    async def whoami(user: CurrentUser):
        return {"username": user.username, "role": user.role.value}

    @app.get("/admin", dependencies=[Depends(role_required(Role.ADMIN))])
    async def admin_only():
        return {"ok": True}

    return app


def test_middleware_resolves_bearer_token():
    client = TestClient(_app())

    response = client.get("/whoami", headers={"Authorization": "Bearer supervisor-token"})

    assert response.status_code == 200
    assert response.json() == {"username": "supervisor", "role": "SUPERVISOR"}


def test_middleware_rejects_invalid_credentials():
    client = TestClient(_app())

    assert client.get("/whoami", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.get("/whoami", headers={"Authorization": "Basic abc"}).status_code == 401


def test_missing_token_is_unauthenticated_and_wrong_role_forbidden():
    client = TestClient(_app())

    response = client.get("/whoami")
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"

    forbidden = client.get("/admin", headers={"Authorization": "Bearer agent-token"})
    assert forbidden.status_code == 403
