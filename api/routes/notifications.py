"""
通知API路由
"""
from typing import List

from fastapi import APIRouter, Depends

from application.dto import (
    AffectedCountDTO,
    CreateNotificationDTO,
    MessageDTO,
    NotificationDTO,
    PaginationParams,
    UnreadCountDTO,
)
from application.services.notification_service import NotificationRelay
from api.dependencies import get_current_user_id, get_notification_relay, require_notification_producer
from core.response import success_response, Response as ApiResponse

router = APIRouter(
    prefix="/notifications",
    tags=["通知"]
)


@router.get("", summary="通知列表", response_model=ApiResponse[List[NotificationDTO]])
async def list_notifications(
    pagination: PaginationParams = Depends(),
    user_id: int = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_notification_relay),
):
    """最新的在前"""
    items = await relay.list_for(user_id, skip=pagination.skip, limit=pagination.limit)
    return success_response(data=items)


@router.post(
    "",
    summary="投递通知",
    response_model=ApiResponse[NotificationDTO],
    dependencies=[Depends(require_notification_producer)],
)
async def create_notification(
    body: CreateNotificationDTO,
    relay: NotificationRelay = Depends(get_notification_relay),
):
    """
    由业务侧服务（点赞、评论、关注……）携带 X-Producer-Key 调用

    - **recipient_id**: 接收者ID
    - **sender_id**: 触发通知的用户（可选）
    - **kind**: 通知类型
    - **payload**: 任意附加数据
    """
    notification = await relay.notify(body.recipient_id, body.kind, body.payload, sender_id=body.sender_id)
    return success_response(data=notification)


@router.get("/unread-count", summary="未读通知数", response_model=ApiResponse[UnreadCountDTO])
async def unread_count(
    user_id: int = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_notification_relay),
):
    return success_response(data=UnreadCountDTO(unread_count=await relay.unread_count(user_id)))


@router.put("/read/{notification_id}", summary="标记通知已读", response_model=ApiResponse[NotificationDTO])
async def mark_read(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_notification_relay),
):
    return success_response(data=await relay.mark_read(notification_id, user_id))


@router.put("/read-all", summary="全部标记已读", response_model=ApiResponse[AffectedCountDTO])
async def mark_all_read(
    user_id: int = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_notification_relay),
):
    return success_response(data=AffectedCountDTO(count=await relay.mark_all_read(user_id)))


@router.delete("/delete-all", summary="删除全部通知", response_model=ApiResponse[AffectedCountDTO])
async def delete_all(
    user_id: int = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_notification_relay),
):
    return success_response(data=AffectedCountDTO(count=await relay.delete_all(user_id)))


@router.delete("/{notification_id}", summary="删除通知", response_model=ApiResponse[MessageDTO])
async def delete_notification(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_notification_relay),
):
    await relay.delete(notification_id, user_id)
    return success_response(data=MessageDTO(message="Notification deleted"))
