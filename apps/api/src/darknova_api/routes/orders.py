from fastapi import APIRouter, Depends, HTTPException
import logging
from datetime import date
from pydantic import BaseModel, Field
from typing import List, Optional
from darknova_core.domain import (
    WORKING_STATUSES,
    ProgressStatus,
    Unit,
    available_orders,
    orders_for_user,
)
from darknova_core.services import FarmService
from ..deps import get_current_user, get_service
from ..views import order_view, progress_view

router = APIRouter(prefix="/orders", tags=["orders"])
log = logging.getLogger("darknova_api")

SCOPES = {
    "active": WORKING_STATUSES,
    "submitted": (ProgressStatus.SUBMITTED,),
    "confirmed": (ProgressStatus.CONFIRMED,),
}


class OrderItemRequest(BaseModel):
    block_id: str
    amount: int = Field(gt=0)
    unit: Unit = Unit.DK


class OrderCreateRequest(BaseModel):
    items: List[OrderItemRequest]
    start_date: date
    deadline: date
    auto_assign: bool = False
    notes: Optional[str] = None


class ProgressUpdateRequest(BaseModel):
    block_id: str
    amount: int


@router.get("/")
def list_orders(scope: str = "all", user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    orders = service.list_orders(user)
    if scope == "available":
        orders = available_orders(orders, user.id)
    elif scope in SCOPES:
        orders = orders_for_user(orders, user.id, SCOPES[scope])
    elif scope != "all":
        raise HTTPException(status_code=400, detail=f"unknown scope: {scope}")
    users = service.list_users(user)
    today = service.today()
    log.info("order.list scope=%s count=%d actor=%s", scope, len(orders), user.username)
    return [order_view(o, user, users, today) for o in orders]


@router.get("/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    order = service.get_order(user, order_id)
    return order_view(order, user, service.list_users(user), service.today())


@router.post("/")
def create_order(data: OrderCreateRequest, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    order = service.create_order(
        user,
        items=[i.model_dump() for i in data.items],
        start_date=data.start_date,
        deadline=data.deadline,
        auto_assign=data.auto_assign,
        notes=data.notes,
    )
    return order_view(order, user, service.list_users(user), service.today())


@router.delete("/{order_id}")
def delete_order(order_id: str, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    service.delete_order(user, order_id)
    return {"status": "deleted"}


def _progress_response(service: FarmService, user, order_id: str):
    order = service.get_order(user, order_id)
    progress = order.progress_for(user.id)
    return progress_view(order, progress, service.list_users(user))


@router.post("/{order_id}/accept")
def accept_order(order_id: str, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    service.accept_order(user, order_id)
    return _progress_response(service, user, order_id)


@router.put("/{order_id}/progress")
def update_progress(order_id: str, data: ProgressUpdateRequest, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    service.update_progress(user, order_id, data.block_id, data.amount)
    return _progress_response(service, user, order_id)


@router.post("/{order_id}/submit")
def submit_order(order_id: str, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    service.submit_order(user, order_id)
    return _progress_response(service, user, order_id)


@router.post("/{order_id}/confirm/{user_id}")
def confirm_order(order_id: str, user_id: str, user=Depends(get_current_user), service: FarmService = Depends(get_service)):
    progress = service.confirm_order(user, order_id, user_id)
    order = service.get_order(user, order_id)
    return progress_view(order, progress, service.list_users(user))
