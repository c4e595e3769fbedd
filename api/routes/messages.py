"""
私信API路由 - 断线后的补偿读取与操作
"""
from typing import List

from fastapi import APIRouter, Depends

from application.dto import (
    AffectedCountDTO,
    ContactDTO,
    DirectMessageDTO,
    MessageDTO,
    PaginationParams,
    SendDirectMessageDTO,
    UnreadCountDTO,
)
from application.services.messaging_service import MessagingService
from api.dependencies import get_current_user_id, get_messaging_service
from core.response import success_response, Response as ApiResponse

router = APIRouter(
    prefix="/messages",
    tags=["私信"]
)


@router.get("/unread-count", summary="未读私信数", response_model=ApiResponse[UnreadCountDTO])
async def unread_count(
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    count = await service.unread_count(user_id)
    return success_response(data=UnreadCountDTO(unread_count=count))


@router.get("/contacts", summary="会话列表", response_model=ApiResponse[List[ContactDTO]])
async def contacts(
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    """按最后一条消息时间倒序，附带每个会话的未读数"""
    return success_response(data=await service.list_contacts(user_id))


@router.post("/send", summary="发送私信", response_model=ApiResponse[DirectMessageDTO])
async def send(
    body: SendDirectMessageDTO,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    """
    发送私信

    - **recipient_id**: 接收者ID
    - **text**: 文本内容（与附件至少提供一个）
    - **attachment**: 附件引用（image/file）
    """
    message = await service.send_direct(user_id, body.recipient_id, text=body.text, attachment=body.attachment)
    return success_response(data=message)


@router.put("/read/{message_id}", summary="标记私信已读", response_model=ApiResponse[DirectMessageDTO])
async def mark_read(
    message_id: int,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return success_response(data=await service.mark_read(message_id, user_id))


@router.put("/read-all/{peer_id}", summary="标记会话全部已读", response_model=ApiResponse[AffectedCountDTO])
async def mark_all_read(
    peer_id: int,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    count = await service.mark_all_read(user_id, peer_id)
    return success_response(data=AffectedCountDTO(count=count))


@router.delete("/clear/{peer_id}", summary="撤回发给对方的全部私信", response_model=ApiResponse[AffectedCountDTO])
async def clear_conversation(
    peer_id: int,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    count = await service.clear_conversation(user_id, peer_id)
    return success_response(data=AffectedCountDTO(count=count))


@router.get("/{peer_id}", summary="会话消息", response_model=ApiResponse[List[DirectMessageDTO]])
async def conversation(
    peer_id: int,
    pagination: PaginationParams = Depends(),
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    """按发送时间正序返回"""
    messages = await service.list_conversation(user_id, peer_id, skip=pagination.skip, limit=pagination.limit)
    return success_response(data=messages)


@router.delete("/{message_id}", summary="删除私信", response_model=ApiResponse[MessageDTO])
async def delete_message(
    message_id: int,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    """仅发送者可删除；删除不会推送给对方"""
    await service.delete_direct(message_id, user_id)
    return success_response(data=MessageDTO(message="Message deleted"))
