"""
用户仓储接口 - 定义数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List
from .entity import User


class UserRepository(ABC):
    """用户仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, user: User) -> User:
        """创建用户"""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        """根据ID获取用户"""
        pass

    @abstractmethod
    async def get_by_ids(self, user_ids: List[int]) -> List[User]:
        """批量获取用户（用于联系人列表）"""
        pass

    @abstractmethod
    async def exists(self, user_id: int) -> bool:
        """检查用户是否存在"""
        pass

    @abstractmethod
    async def update_presence(self, user_id: int, is_online: bool, last_active: datetime) -> User:
        """写回在线状态；用户不存在时抛出 UserNotFoundException"""
        pass
