"""
API依赖项 - 认证与应用服务获取
"""
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader, HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import hmac

from application.services.messaging_service import MessagingService
from application.services.notification_service import NotificationRelay
from application.services.presence_service import PresenceService
from application.services.realtime_service import HubService
from application.services.token_service import TokenService
from core.config import settings
from core.exceptions import ForbiddenException, UnauthorizedException

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)

# 业务侧投递通知使用的共享密钥（不是用户令牌）
producer_key_header = APIKeyHeader(
    name="X-Producer-Key",
    scheme_name="ProducerKey",
    auto_error=False,
)


def _app_state(request: Request, name: str):
    svc = getattr(request.app.state, name, None)
    if svc is None:
        raise RuntimeError(f"{name} not initialized. Ensure lifespan sets app.state.{name}.")
    return svc


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> str:
    """从Bearer token中提取token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("未提供认证凭据")


async def get_token_service(request: Request) -> TokenService:
    return _app_state(request, "token_service")


async def get_current_user_id(
    token: str = Depends(get_token),
    token_service: TokenService = Depends(get_token_service),
) -> int:
    """获取当前登录用户ID（过期令牌抛出 TokenExpiredException）"""
    user_id = await token_service.verify_access_token(token)
    if user_id is None:
        raise UnauthorizedException("无效的认证凭据")
    return user_id


async def get_messaging_service(request: Request) -> MessagingService:
    return _app_state(request, "messaging_service")


async def get_notification_relay(request: Request) -> NotificationRelay:
    return _app_state(request, "notification_relay")


async def get_presence_service(request: Request) -> PresenceService:
    return _app_state(request, "presence_service")


async def get_hub_service(request: Request) -> HubService:
    return _app_state(request, "hub_service")


async def require_notification_producer(
    producer_key: Optional[str] = Depends(producer_key_header),
) -> None:
    """只允许持有投递密钥的业务服务投递通知；普通用户令牌无效"""
    expected = settings.NOTIFICATION_PRODUCER_KEY
    if not expected or not producer_key or not hmac.compare_digest(producer_key, expected):
        raise ForbiddenException("Notification producer credential required")
