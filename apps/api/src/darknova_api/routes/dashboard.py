from fastapi import APIRouter, Depends
import logging
from darknova_core.services import FarmService
from ..deps import get_current_user, get_service

router = APIRouter(prefix="/dashboard", tags=["dashboard"])
log = logging.getLogger("darknova_api")


@router.get("/")
def dashboard(user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    summary = service.dashboard(user)
    log.info("dashboard actor=%s role=%s", user.username, user.role.value)
    return {"role": user.role.value, **summary}
