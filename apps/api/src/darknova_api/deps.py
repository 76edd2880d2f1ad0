from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
import logging
from darknova_core.auth import decode_token, ExpiredSignatureError, JWTError, SessionProvider
from darknova_core.domain import Role, User
from darknova_core.services import FarmService

auth_log = logging.getLogger("darknova_api.auth")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/users/login")


def get_service(request: Request) -> FarmService:
    return request.app.state.service


def get_sessions(request: Request) -> SessionProvider:
    return request.app.state.sessions


def get_current_user(token: str = Depends(oauth2_scheme), service: FarmService = Depends(get_service)) -> User:
    """Resolve the current user from a bearer token."""
    try:
        payload = decode_token(token)
    except ExpiredSignatureError:
        auth_log.warning("auth.token expired")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="expired token")
    except JWTError:
        auth_log.warning("auth.token invalid")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")

    login = payload.get("sub")
    if not login:
        auth_log.warning("auth.token missing_sub")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token: no subject")

    user = service.repos.users.get_by_login(login)
    if not user:
        auth_log.warning("auth.user not_found sub=%s", login)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token: user not found")
    return user


def require_roles(*roles: Role):
    """Dependency factory rejecting users whose role is not in ``roles`` with 403."""

    def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            auth_log.warning("auth.forbidden username=%s role=%s", user.username, user.role.value)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient role")
        return user

    return _check
