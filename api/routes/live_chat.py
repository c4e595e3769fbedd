"""
群聊API路由
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from application.dto import (
    AffectedCountDTO,
    LiveChatMessageDTO,
    MarkSeenDTO,
    MessageDTO,
    SendLiveChatMessageDTO,
)
from application.services.messaging_service import MessagingService
from api.dependencies import get_current_user_id, get_messaging_service
from core.response import success_response, Response as ApiResponse

router = APIRouter(
    prefix="/live-chat",
    tags=["群聊"]
)


@router.get("", summary="群聊历史", response_model=ApiResponse[List[LiveChatMessageDTO]])
async def history(
    limit: Optional[int] = Query(None, ge=1, le=200, description="最近N条，默认取配置值"),
    _user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return success_response(data=await service.list_group_history(limit))


@router.post("", summary="发送群聊消息", response_model=ApiResponse[LiveChatMessageDTO])
async def send(
    body: SendLiveChatMessageDTO,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    """文本或语音（audio.url）至少提供一个；发送后推送到 global-chat"""
    message = await service.send_group(user_id, text=body.text, audio=body.audio)
    return success_response(data=message)


@router.post("/seen", summary="确认已看到", response_model=ApiResponse[AffectedCountDTO])
async def mark_seen(
    body: MarkSeenDTO,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    count = await service.mark_seen(body.message_ids, user_id)
    return success_response(data=AffectedCountDTO(count=count))


@router.delete("/{message_id}", summary="删除群聊消息", response_model=ApiResponse[MessageDTO])
async def delete_message(
    message_id: int,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    await service.delete_group(message_id, user_id)
    return success_response(data=MessageDTO(message="Message deleted"))
