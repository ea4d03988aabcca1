from __future__ import annotations
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from tempo.config import Config
from tempo.core.jsonio import atomic_write_json, read_json_dict
from tempo.planning.energy import EnergyProfile, default_energy_profile

logger = logging.getLogger(__name__)

PREFERENCES_FILE = "user_preferences_v1.json"

HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class TimeBlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: Optional[str] = None
    start: str = Field(..., pattern=HHMM)
    end: str = Field(..., pattern=HHMM)


class Preferences(BaseModel):
    """What the user told us about their week; unset fields leave the config alone."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timezone: Optional[str] = None
    default_event_minutes: Optional[int] = Field(
        None, ge=1, le=24 * 60, validation_alias=AliasChoices("defaultEventMinutes", "default_event_minutes"),
        serialization_alias="defaultEventMinutes")
    default_task_minutes: Optional[int] = Field(
        None, ge=1, le=24 * 60, validation_alias=AliasChoices("defaultTaskMinutes", "default_task_minutes"),
        serialization_alias="defaultTaskMinutes")
    buffer_between_events_minutes: Optional[int] = Field(
        None, ge=0, le=240,
        validation_alias=AliasChoices("bufferBetweenEventsMinutes", "buffer_between_events_minutes"),
        serialization_alias="bufferBetweenEventsMinutes")
    energy_peaks: List[TimeBlock] = Field(
        default_factory=list, validation_alias=AliasChoices("energyPeaks", "energy_peaks"),
        serialization_alias="energyPeaks")
    low_energy_times: List[TimeBlock] = Field(
        default_factory=list, validation_alias=AliasChoices("lowEnergyTimes", "low_energy_times"),
        serialization_alias="lowEnergyTimes")
    scheduling_style: Optional[Literal["packed", "balanced", "spaced"]] = Field(
        None, validation_alias=AliasChoices("schedulingStyle", "scheduling_style"),
        serialization_alias="schedulingStyle")

    def apply(self, cfg: Config) -> Config:
        overrides: Dict[str, Any] = {}
        if self.timezone:
            overrides["timezone"] = self.timezone
        if self.default_event_minutes is not None:
            overrides["default_event_minutes"] = self.default_event_minutes
        if self.default_task_minutes is not None:
            overrides["default_task_minutes"] = self.default_task_minutes
        if self.buffer_between_events_minutes is not None:
            overrides["buffer_minutes"] = self.buffer_between_events_minutes
        return replace(cfg, **overrides) if overrides else cfg

    def energy_profile(self) -> EnergyProfile:
        base = default_energy_profile()
        peak = self.energy_peaks[0] if self.energy_peaks else None
        slump = self.low_energy_times[0] if self.low_energy_times else None
        if peak is None and slump is None:
            return base
        return EnergyProfile(
            peak_start=peak.start if peak else base.peak_start,
            peak_end=peak.end if peak else base.peak_end,
            slump_start=slump.start if slump else base.slump_start,
            slump_end=slump.end if slump else base.slump_end,
        )

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_defaults=True)


class PreferencesStore:
    def __init__(self, data_dir: str):
        self.path = Path(data_dir) / PREFERENCES_FILE

    def load(self) -> Optional[Preferences]:
        blob = read_json_dict(self.path)
        if not blob:
            return None
        try:
            return Preferences.model_validate(blob)
        except ValidationError as e:
            logger.warning("ignoring invalid preferences in %s: %d errors", self.path, e.error_count())
            return None

    def save(self, prefs: Preferences) -> None:
        atomic_write_json(self.path, prefs.to_json())
