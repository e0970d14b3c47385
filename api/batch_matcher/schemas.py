import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class ConnectionType(str, Enum):
    romantic = "romantic"
    friends = "friends"


_CONNECTION_ALIASES = {
    "romantic": ConnectionType.romantic,
    "dating": ConnectionType.romantic,
    "friends": ConnectionType.friends,
    "friend": ConnectionType.friends,
    "friendship": ConnectionType.friends,
}


def _tag_set(values: Any) -> frozenset[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise ValueError("expected a list of tags")
    return frozenset(str(v).strip().lower() for v in values if str(v or "").strip())


class Intention(BaseModel):
    """A user's structured statement of what they want from the next batch.

    Built once per run from the stored intent blob; everything downstream
    reads these fields directly and never re-parses the blob.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    connection_type: ConnectionType
    location: str = ""
    time_windows: frozenset[str] = frozenset()
    activities: frozenset[str] = frozenset()
    free_text: str = ""

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _require_identifier(cls, value: Any) -> str:
        out = str(value or "").strip()
        if not out:
            raise ValueError("identifier is required")
        return out

    @field_validator("location", "free_text", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("expected text")
        return value.strip()

    @field_validator("time_windows", "activities", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> frozenset[str]:
        return _tag_set(value)

    @field_validator("connection_type", mode="before")
    @classmethod
    def _normalize_connection_type(cls, value: Any) -> ConnectionType:
        if isinstance(value, ConnectionType):
            return value
        key = str(value or "").strip().lower()
        if key not in _CONNECTION_ALIASES:
            raise ValueError(f"unknown connection type: {value!r}")
        return _CONNECTION_ALIASES[key]

    @classmethod
    def from_chips(cls, *, intention_id: Any, user_id: Any, chips: Any, free_text: Any = "") -> "Intention":
        # parsed_json chips: {"what": {"intention", "activities"}, "when": [...], "where": str, "vibe": [...]}
        if isinstance(chips, (str, bytes)):
            chips = json.loads(chips)
        if not isinstance(chips, dict):
            chips = {}
        what = chips.get("what") if isinstance(chips.get("what"), dict) else {}
        return cls(
            id=intention_id,
            user_id=user_id,
            connection_type=what.get("intention"),
            location=chips.get("where"),
            time_windows=chips.get("when"),
            activities=what.get("activities"),
            free_text=free_text,
        )

    def has_viable_intent(self) -> bool:
        return bool(self.location and self.time_windows and self.activities)
