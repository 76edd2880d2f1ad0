from fastapi import APIRouter, Depends, HTTPException
import logging
from pydantic import BaseModel
from darknova_core.auth import INVALID_CREDENTIALS, SessionProvider
from darknova_core.domain import Role
from darknova_core.services import FarmService
from ..deps import get_current_user, get_service, get_sessions, oauth2_scheme, require_roles
from ..views import absence_view, order_view, user_view

router = APIRouter(prefix="/users", tags=["users"])
log = logging.getLogger("darknova_api")
auth_log = logging.getLogger("darknova_api.auth")


class UserCreateRequest(BaseModel):
    username: str
    password: str
    role: Role = Role.FARMER


class UserRegisterRequest(BaseModel):
    username: str
    password: str


class UserLoginRequest(BaseModel):
    username: str
    password: str


@router.post("/login")
def login(request: UserLoginRequest, sessions: SessionProvider = Depends(get_sessions)):
    token = sessions.sign_in(request.username, request.password)
    if not token:
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
    return {"access_token": token, "token_type": "bearer"}


@router.post("/logout")
def logout(token: str = Depends(oauth2_scheme), user=Depends(get_current_user), sessions: SessionProvider = Depends(get_sessions)):
    sessions.sign_out(token)
    return {"status": "signed_out"}


@router.post("/register")
def register(request: UserRegisterRequest, service: FarmService = Depends(get_service)):
    user = service.register_user(request.username, request.password)
    return user_view(user)


@router.get("/me")
def me(user=Depends(get_current_user)):
    return user_view(user)


@router.get("/")
def list_users(user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    users = service.list_users(user)
    log.info("user.list count=%d actor=%s", len(users), user.username)
    return [user_view(u) for u in users]


@router.post("/")
def create_user(request: UserCreateRequest, user=Depends(require_roles(Role.ADMIN)), service: FarmService = Depends(get_service)):
    created = service.create_user(user, request.username, request.password, request.role)
    return user_view(created)


@router.delete("/{user_id}")
def delete_user(user_id: str, user=Depends(require_roles(Role.ADMIN)), service: FarmService = Depends(get_service)):
    service.delete_user(user, user_id)
    return {"status": "deleted"}


@router.get("/{user_id}/profile")
def user_profile(user_id: str, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    profile = service.user_profile(user, user_id)
    users = service.list_users(user)
    today = service.today()
    return {
        "user": user_view(profile["user"]),
        "active": [order_view(o, profile["user"], users, today) for o in profile["active"]],
        "submitted": [order_view(o, profile["user"], users, today) for o in profile["submitted"]],
        "confirmed": [order_view(o, profile["user"], users, today) for o in profile["confirmed"]],
        "absences": [absence_view(a) for a in profile["absences"]],
    }
