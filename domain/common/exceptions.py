"""领域层业务异常定义，供领域、应用与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Shape used by WebSocket error envelopes."""
        data = {"code": int(self.code), "message": self.message, "error_type": self.error_type}
        if self.details:
            data["details"] = self.details
        return data


class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[int] = None):
        details = {"user_id": user_id} if user_id is not None else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class MessageNotFoundException(BusinessException):
    def __init__(self, message_id: Optional[int] = None):
        details = {"message_id": message_id} if message_id is not None else None
        super().__init__(
            code=BusinessCode.MESSAGE_NOT_FOUND,
            message="Message not found",
            error_type="MessageNotFound",
            details=details,
        )


class NotificationNotFoundException(BusinessException):
    def __init__(self, notification_id: Optional[int] = None):
        details = {"notification_id": notification_id} if notification_id is not None else None
        super().__init__(
            code=BusinessCode.NOTIFICATION_NOT_FOUND,
            message="Notification not found",
            error_type="NotificationNotFound",
            details=details,
        )


class MessagePermissionException(BusinessException):
    """Raised when a user acts on a message or notification that is not theirs."""

    def __init__(self, action: str, resource_id: Optional[int] = None):
        details = {"action": action}
        if resource_id is not None:
            details["resource_id"] = resource_id
        super().__init__(
            code=BusinessCode.PERMISSION_ERROR,
            message=f"Not authorized to {action}",
            error_type="PermissionDenied",
            details=details,
        )


class RoomAccessDeniedException(BusinessException):
    def __init__(self, room: str):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="Forbidden: private room",
            error_type="RoomAccessDenied",
            details={"room": room},
        )


class TopicNotFoundException(BusinessException):
    def __init__(self, topic: str):
        super().__init__(
            code=BusinessCode.TOPIC_NOT_FOUND,
            message="Unknown topic",
            error_type="TopicNotFound",
            details={"topic": topic},
        )


class IdentityMismatchException(BusinessException):
    """authenticate claimed an identity other than the verified session's."""

    def __init__(self, claimed: object, verified: Optional[int]):
        super().__init__(
            code=BusinessCode.IDENTITY_MISMATCH,
            message="Claimed identity does not match the verified session",
            error_type="IdentityMismatch",
            details={"claimed": str(claimed), "verified": verified},
        )
