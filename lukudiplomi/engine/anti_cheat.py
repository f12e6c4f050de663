"""
lukudiplomi.engine.anti_cheat — Movement consistency check
===========================================================

Clients animate board movement locally and then claim where the token
landed.  The server position plus the claimed step count is the only
position that is accepted; anything else is a tampering signal.

Pure calculation — recording the audit entry is the service's job.
"""

from __future__ import annotations

from dataclasses import dataclass

from lukudiplomi.errors import ValidationError

INVALID_MOVEMENT_MESSAGE = "Invalid movement detected"


@dataclass(frozen=True, slots=True)
class MovementCheck:
    valid: bool
    claimed_position: int
    claimed_steps: int
    current_position: int
    expected_position: int

    @property
    def new_position(self) -> int | None:
        return self.expected_position if self.valid else None

    @property
    def message(self) -> str | None:
        return None if self.valid else INVALID_MOVEMENT_MESSAGE

    def audit_metadata(self) -> dict[str, int]:
        return {
            "claimedPosition": self.claimed_position,
            "expectedPosition": self.expected_position,
            "claimedSteps": self.claimed_steps,
            "currentPosition": self.current_position,
        }

    def to_dict(self) -> dict:
        if self.valid:
            return {"valid": True, "newPosition": self.expected_position}
        return {"valid": False, "message": INVALID_MOVEMENT_MESSAGE}


def _require_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


def check_movement(
    current_position: int, claimed_position: int, claimed_steps: int
) -> MovementCheck:
    """Compare a claimed landing position with the authoritative one."""
    claimed_position = _require_int("claimedPosition", claimed_position)
    claimed_steps = _require_int("claimedSteps", claimed_steps)

    expected = current_position + claimed_steps
    return MovementCheck(
        valid=claimed_position == expected,
        claimed_position=claimed_position,
        claimed_steps=claimed_steps,
        current_position=current_position,
        expected_position=expected,
    )
