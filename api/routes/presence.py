"""
在线状态API路由
"""
from typing import List

from fastapi import APIRouter, Depends

from application.dto import PresenceDTO
from application.services.presence_service import PresenceService
from api.dependencies import get_current_user_id, get_presence_service
from core.response import success_response, Response as ApiResponse

router = APIRouter(
    prefix="/presence",
    tags=["在线状态"]
)


@router.get("/online", summary="在线用户", response_model=ApiResponse[List[int]])
async def online_users(
    _user_id: int = Depends(get_current_user_id),
    presence: PresenceService = Depends(get_presence_service),
):
    return success_response(data=presence.online_user_ids())


@router.get("/{user_id}", summary="用户在线状态", response_model=ApiResponse[PresenceDTO])
async def get_presence(
    user_id: int,
    _current_user_id: int = Depends(get_current_user_id),
    presence: PresenceService = Depends(get_presence_service),
):
    return success_response(data=await presence.get(user_id))
