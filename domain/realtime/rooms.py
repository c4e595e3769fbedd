"""Room naming conventions shared by producers and the hub.

Personal rooms (``user-{id}``) carry direct messages, notifications and
typing indicators for one user; every connection bound to that user joins
it. Topic rooms are shared feeds any connection may subscribe to, except
quest rooms which are private to their owner.
"""
from __future__ import annotations

from typing import Optional

GLOBAL_CHAT = "global-chat"

CRYPTO_UPDATES = "crypto-updates"
SOLANA_UPDATES = "solana-updates"
FEAR_GREED_UPDATES = "fear-greed-updates"
GRADUATED_TOKENS_UPDATES = "graduated-tokens-updates"

PUBLIC_TOPICS = frozenset(
    {
        GLOBAL_CHAT,
        CRYPTO_UPDATES,
        SOLANA_UPDATES,
        FEAR_GREED_UPDATES,
        GRADUATED_TOKENS_UPDATES,
    }
)

_PERSONAL_PREFIX = "user-"
_QUEST_PREFIX = "quests-"


def personal_room(user_id: int) -> str:
    return f"{_PERSONAL_PREFIX}{user_id}"


def _owner(room: str, prefix: str) -> Optional[int]:
    if not room.startswith(prefix):
        return None
    try:
        return int(room[len(prefix):])
    except ValueError:
        return None


def quest_room_owner(room: str) -> Optional[int]:
    return _owner(room, _QUEST_PREFIX)


def is_known_topic(room: str) -> bool:
    return room in PUBLIC_TOPICS or quest_room_owner(room) is not None


__all__ = [
    "GLOBAL_CHAT",
    "CRYPTO_UPDATES",
    "SOLANA_UPDATES",
    "FEAR_GREED_UPDATES",
    "GRADUATED_TOKENS_UPDATES",
    "PUBLIC_TOPICS",
    "personal_room",
    "quest_room_owner",
    "is_known_topic",
]
