"""
Per-user view preferences for the schedule grid.

Preferences are plain data handed to the LedgerSession. Where they are kept is
up to the injected PreferenceStore (in memory for tests, anything key-value in
a real client).
"""
import json
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

logger = structlog.get_logger(__name__)

STORAGE_KEY = "crewplan-view-preferences"


class ViewPreferences(BaseModel):
    show_start_time: bool = True
    show_onsite_time: bool = True
    show_offsite_time: bool = True
    show_duration_badge: bool = True
    prompt_operative_move_scope: bool = True
    default_day_start_time: str = "08:30"
    default_night_start_time: str = "20:00"
    pre_start_buffer_minutes: int = Field(default=15, ge=0)
    color_labels: Dict[str, str] = Field(default_factory=dict)
    vehicle_types: List[str] = Field(default_factory=list)


class PreferenceStore:
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class MemoryPreferenceStore(PreferenceStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


def load_preferences(store: PreferenceStore, key: str = STORAGE_KEY) -> ViewPreferences:
    """Stored values merged over defaults. Unreadable data falls back to defaults."""
    raw = store.get(key)
    if not raw:
        return ViewPreferences()
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("preferences must be a JSON object")
        return ViewPreferences(**data)
    except (ValueError, PydanticValidationError) as e:
        logger.warning("preferences_unreadable", key=key, error=str(e))
        return ViewPreferences()


def save_preferences(store: PreferenceStore, preferences: ViewPreferences, key: str = STORAGE_KEY) -> None:
    store.set(key, preferences.model_dump_json())
