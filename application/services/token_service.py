"""
令牌服务 - 签发与校验访问令牌（JWT）

账户与登录由外部系统负责；实时中心只需要把访问令牌解析成可信的用户ID。
"""
from typing import Optional
from datetime import datetime, timedelta, timezone
import jwt
import uuid

from domain.user.entity import User
from core.config import settings
from core.exceptions import TokenExpiredException
from core.logging_config import get_logger


logger = get_logger(__name__)


class TokenService:
    """访问令牌服务"""

    def _generate_jti(self) -> str:
        """生成唯一的JWT Token ID"""
        return str(uuid.uuid4())

    def create_access_token(self, user: User, *, expires_delta: Optional[timedelta] = None) -> str:
        """创建访问令牌"""
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode = {
            "sub": str(user.id),
            "username": user.username,
            "exp": expire,
            "type": "access",
            "jti": self._generate_jti(),
        }
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    async def verify_access_token(self, token: str) -> Optional[int]:
        """Verify an access JWT and return the user id.

        - Expired token: raise TokenExpiredException
        - Invalid token or wrong type: return None
        """
        try:
            payload = jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.InvalidTokenError as exc:
            logger.warning("invalid_access_token", error=str(exc))
            return None

        if payload.get("type") != "access":
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None
        try:
            return int(user_id)
        except (TypeError, ValueError):
            return None
