from fastapi import APIRouter, Depends
import logging
from datetime import date
from pydantic import BaseModel
from typing import Optional
from darknova_core.services import FarmService
from ..deps import get_current_user, get_service
from ..views import absence_view

router = APIRouter(prefix="/absences", tags=["absences"])
log = logging.getLogger("darknova_api")


class AbsenceCreateRequest(BaseModel):
    start_date: date
    end_date: date
    reason: Optional[str] = None


@router.get("/")
def list_absences(user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    absences = service.list_absences(user)
    log.info("absence.list count=%d actor=%s", len(absences), user.username)
    return [absence_view(a) for a in absences]


@router.post("/")
def create_absence(data: AbsenceCreateRequest, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    absence = service.create_absence(user, data.start_date, data.end_date, data.reason)
    return absence_view(absence)


@router.post("/{absence_id}/approve")
def approve_absence(absence_id: str, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    return absence_view(service.approve_absence(user, absence_id))


@router.post("/{absence_id}/reject")
def reject_absence(absence_id: str, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    return absence_view(service.reject_absence(user, absence_id))
