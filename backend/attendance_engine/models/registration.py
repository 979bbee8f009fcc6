# File: backend/attendance_engine/models/registration.py
"""Student registration for an activity."""
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Optional, Tuple

from attendance_engine.models.activity import ActivityType, SlotKey
from attendance_engine.models.base import BaseModel


@dataclass(frozen=True)
class Registration(BaseModel):
    """The (day, slot) pairs a student is approved for."""
    user_id: str
    activity_type: ActivityType
    approved: bool = True
    day_slots: FrozenSet[Tuple[int, SlotKey]] = field(default_factory=frozenset)

    def allows(self, day_number: int, slot_key: SlotKey) -> bool:
        """Whether a check-in may be offered or counted for (day, slot)."""
        if not self.approved:
            return False
        if self.activity_type == ActivityType.SINGLE_DAY:
            # Legacy single-day registrations carry no slot list and cover every slot.
            if not self.day_slots:
                return True
            return any(key == slot_key for _, key in self.day_slots)
        return (day_number, slot_key) in self.day_slots

    @classmethod
    def from_participant(cls, raw: Any, activity_type: ActivityType) -> Optional['Registration']:
        """Build from a participant entry; None for malformed entries."""
        if not isinstance(raw, dict):
            return None
        user_id = participant_user_id(raw.get('userId'))
        if not user_id:
            return None

        day_slots = set()
        for item in raw.get('registeredDaySlots') or []:
            if not isinstance(item, dict):
                continue
            slot_key = SlotKey.parse(item.get('slot'))
            try:
                day_number = int(item.get('day', 1))
            except (TypeError, ValueError, OverflowError):
                continue
            if slot_key is not None:
                day_slots.add((day_number, slot_key))

        return cls(
            user_id=user_id,
            activity_type=activity_type,
            approved=raw.get('approvalStatus', 'approved') == 'approved',
            day_slots=frozenset(day_slots)
        )

    @classmethod
    def for_user(
        cls,
        participants: Iterable[Any],
        user_id: str,
        activity_type: ActivityType
    ) -> Optional['Registration']:
        """Find the registration of one user among an activity's participants."""
        for raw in participants or []:
            registration = cls.from_participant(raw, activity_type)
            if registration is not None and registration.user_id == str(user_id):
                return registration
        return None


def participant_user_id(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get('_id') or value.get('$oid') or '')
    return str(value) if value else ''
