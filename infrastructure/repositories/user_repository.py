"""
用户仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from domain.user.entity import User, PresenceRecord
from domain.user.repository import UserRepository
from infrastructure.models.user import UserModel
from core.logging_config import get_logger
from domain.common.exceptions import UserNotFoundException


logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):
    """用户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        """将数据库模型转换为领域实体"""
        return User(
            id=model.id,
            username=model.username,
            is_active=model.is_active,
            presence=PresenceRecord(is_online=model.is_online, last_active=model.last_active),
            created_at=model.created_at,
        )

    def _to_model(self, entity: User) -> UserModel:
        """将领域实体转换为数据库模型"""
        return UserModel(
            id=entity.id,
            username=entity.username,
            is_active=entity.is_active,
            is_online=entity.presence.is_online,
            last_active=entity.presence.last_active,
            created_at=entity.created_at or datetime.now(timezone.utc),
        )

    async def create(self, user: User) -> User:
        """创建用户"""
        db_user = self._to_model(user)
        self.session.add(db_user)
        await self.session.flush()  # 获取生成的ID
        await self.session.refresh(db_user)
        return self._to_entity(db_user)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """根据ID获取用户"""
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user_id)
        )
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def get_by_ids(self, user_ids: List[int]) -> List[User]:
        if not user_ids:
            return []
        result = await self.session.execute(
            select(UserModel).where(UserModel.id.in_(list(user_ids)))
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def exists(self, user_id: int) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(UserModel).where(UserModel.id == user_id)
        )
        return (result.scalar() or 0) > 0

    async def update_presence(self, user_id: int, is_online: bool, last_active: datetime) -> User:
        """写回在线状态"""
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user_id)
        )
        db_user = result.scalar_one_or_none()
        if not db_user:
            logger.warning("presence_update_unknown_user", user_id=user_id)
            raise UserNotFoundException(user_id)

        db_user.is_online = is_online
        db_user.last_active = last_active
        await self.session.flush()
        await self.session.refresh(db_user)
        return self._to_entity(db_user)
