from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ticketflow.tickets.models import STAFF_ROLES, Role


class User:
    """Authenticated platform user."""

    def __init__(self, user_id: str, username: str, role: Role):
        self.id = user_id
        self.username = username
        self.role = role

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


# Static tokens for local development; ids match the seeded users.
TOKEN_USER_MAP: dict[str, tuple[str, str, Role]] = {
    "admin-token": ("00000000-0000-0000-0000-000000000001", "admin", Role.ADMIN),
    "supervisor-token": ("00000000-0000-0000-0000-000000000002", "supervisor", Role.SUPERVISOR),
    "agent-token": ("00000000-0000-0000-0000-000000000003", "agent", Role.AGENT),
    "customer-token": ("00000000-0000-0000-0000-000000000004", "customer", Role.CUSTOMER),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None) -> User | None:
    """Return the user behind ``token``; ``None`` when no token was sent."""

    if token is None:
        return None

    if token not in TOKEN_USER_MAP:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    user_id, username, role = TOKEN_USER_MAP[token]
    return User(user_id=user_id, username=username, role=role)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    """Static-token authentication stub.

    The middleware usually resolved the user already; the bearer credentials are the
    fallback when the dependency runs without it (for example in tests).
    """

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    request.state.user = user
    return user


def role_required(*roles: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user holds one of ``roles``."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_role(*roles):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
