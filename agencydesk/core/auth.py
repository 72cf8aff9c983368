from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from agencydesk.core.config import get_settings


@dataclass(frozen=True)
class SessionContext:
    user_id: str | None
    email: str | None = None
    role: str = "anonymous"
    is_super_admin: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == "admin" or self.is_super_admin


ANONYMOUS = SessionContext(user_id=None)


def decode_session(token: str) -> SessionContext:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return ANONYMOUS
    role = payload.get("role", "customer")
    return SessionContext(
        user_id=str(payload["sub"]) if payload.get("sub") else None,
        email=payload.get("email"),
        role=role if role in {"customer", "admin"} else "customer",
        is_super_admin=bool(payload.get("is_super_admin", False)),
    )


async def get_session_context(request: Request) -> SessionContext:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""
    if not token:
        return ANONYMOUS
    return decode_session(token)
