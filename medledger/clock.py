# medledger/clock.py
"""
Logical clock used for expiry comparisons and audit timestamps.

`height()` never decreases. `timestamp()` is a wall-clock-like value and may be
unavailable (None), in which case audit entries record 0.
"""
from abc import ABC, abstractmethod
from typing import Optional
import time


class Clock(ABC):
    @abstractmethod
    def height(self) -> int:
        ...

    def timestamp(self) -> Optional[int]:
        return None


class SystemClock(Clock):
    """Height and timestamp both follow unix seconds."""

    def height(self) -> int:
        return int(time.time())

    def timestamp(self) -> Optional[int]:
        return int(time.time())


class ManualClock(Clock):
    def __init__(self, height: int = 0, timestamp: Optional[int] = None):
        self._height = height
        self._timestamp = timestamp

    def height(self) -> int:
        return self._height

    def timestamp(self) -> Optional[int]:
        return self._timestamp

    def advance(self, blocks: int = 1) -> int:
        if blocks < 0:
            raise ValueError("clock cannot move backwards")
        self._height += blocks
        return self._height

    def set_height(self, height: int) -> int:
        if height < self._height:
            raise ValueError("clock cannot move backwards")
        self._height = height
        return self._height
