"""
Vesting stream record.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from . import vesting_math
from .vesting_math import CliffPolicy


@dataclass
class Stream:
    """
    A single vesting grant.

    ``cliff`` is a time delay under ``CliffPolicy.DELAY`` and an amount
    unlocked at ``start_time`` under ``CliffPolicy.IMMEDIATE``. Only the
    registry's claim path changes ``claimed_amount``.
    """

    stream_id: str
    beneficiary: str
    owner: str
    total_amount: int
    start_time: int
    cliff: int
    duration: int
    cliff_policy: CliffPolicy = CliffPolicy.DELAY
    claimed_amount: int = 0
    created_at: int = 0

    @property
    def cliff_duration(self) -> int:
        return self.cliff if self.cliff_policy is CliffPolicy.DELAY else 0

    @property
    def cliff_amount(self) -> int:
        return self.cliff if self.cliff_policy is CliffPolicy.IMMEDIATE else 0

    @property
    def unlock_begin_time(self) -> int:
        return vesting_math.unlock_begin_time(self.start_time, self.cliff, self.cliff_policy)

    @property
    def unlock_end_time(self) -> int:
        return vesting_math.unlock_end_time(
            self.start_time, self.cliff, self.duration, self.cliff_policy
        )

    @property
    def remaining_amount(self) -> int:
        return self.total_amount - self.claimed_amount

    @property
    def is_fully_claimed(self) -> bool:
        return self.claimed_amount >= self.total_amount

    def unlocked_at(self, now: int) -> int:
        return vesting_math.unlocked_amount(
            self.total_amount, self.start_time, self.cliff, self.duration, now, self.cliff_policy
        )

    def claimable_at(self, now: int) -> int:
        return vesting_math.claimable_amount(
            self.total_amount,
            self.claimed_amount,
            self.start_time,
            self.cliff,
            self.duration,
            now,
            self.cliff_policy,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stream_id": self.stream_id,
            "beneficiary": self.beneficiary,
            "owner": self.owner,
            "total_amount": self.total_amount,
            "claimed_amount": self.claimed_amount,
            "start_time": self.start_time,
            "cliff": self.cliff,
            "duration": self.duration,
            "cliff_policy": self.cliff_policy.value,
            "created_at": self.created_at,
            "unlock_begin_time": self.unlock_begin_time,
            "unlock_end_time": self.unlock_end_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Stream":
        return cls(
            stream_id=data["stream_id"],
            beneficiary=data["beneficiary"],
            owner=data.get("owner", ""),
            total_amount=int(data["total_amount"]),
            start_time=int(data["start_time"]),
            cliff=int(data["cliff"]),
            duration=int(data["duration"]),
            cliff_policy=CliffPolicy.parse(data.get("cliff_policy", CliffPolicy.DELAY.value)),
            claimed_amount=int(data.get("claimed_amount", 0)),
            created_at=int(data.get("created_at", 0)),
        )
