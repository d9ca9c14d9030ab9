from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


_lock = asyncio.Lock()
_slots: dict[str, _Slot] = {}


@asynccontextmanager
async def user_lock(user_id: str) -> AsyncIterator[None]:
    """
    Serialize streak recomputation for one user within this process.

    Notes:
    - Cross-process ordering is handled by the atomic upsert in the store.
    - Slots are dropped once nobody holds or waits on them.
    """
    async with _lock:
        slot = _slots.get(user_id)
        if slot is None:
            slot = _Slot()
            _slots[user_id] = slot
        slot.holders += 1

    try:
        async with slot.lock:
            yield
    finally:
        async with _lock:
            slot.holders -= 1
            if slot.holders <= 0 and _slots.get(user_id) is slot:
                _slots.pop(user_id, None)


def active_user_locks() -> int:
    return len(_slots)
