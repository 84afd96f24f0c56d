"""Schemas for raw interaction events."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inpwatch.constants import (
    DeviceClass,
    INTERACTION_TYPE_MAX_LENGTH,
    SCRIPT_URL_MAX_LENGTH,
    SELECTOR_MAX_LENGTH,
)
from inpwatch.utils.clock import to_storage


class RawEventIn(BaseModel):
    """A validated sample as handed over by intake."""
    timestamp: datetime = Field(..., description="When the interaction happened (UTC)")
    page_url: str = Field("/", description="URL or path reported by the client")
    interaction_type: str = Field("click", description="e.g. click, keydown")
    target_selector: str = Field("", description="Short DOM descriptor of the target")
    interaction_latency_ms: int = Field(..., ge=0, description="Measured INP of this sample")
    long_task_ms: Optional[int] = Field(None, ge=0)
    script_url: Optional[str] = None
    device_class: str = Field(DeviceClass.OTHER, description="desktop|mobile|tablet|other")
    sample_rate: int = Field(100, ge=1, le=100, description="Percent of traffic sampled")

    @field_validator("timestamp")
    @classmethod
    def _second_precision(cls, value: datetime) -> datetime:
        return to_storage(value)

    @field_validator("interaction_type")
    @classmethod
    def _cap_interaction_type(cls, value: str) -> str:
        return value[:INTERACTION_TYPE_MAX_LENGTH]

    @field_validator("target_selector")
    @classmethod
    def _cap_selector(cls, value: str) -> str:
        return value[:SELECTOR_MAX_LENGTH]

    @field_validator("script_url")
    @classmethod
    def _cap_script_url(cls, value: Optional[str]) -> Optional[str]:
        return value[:SCRIPT_URL_MAX_LENGTH] if value is not None else None

    @field_validator("device_class", mode="before")
    @classmethod
    def _coerce_device(cls, value) -> str:
        return value if value in DeviceClass.ALL else DeviceClass.OTHER


class SelectorEvent(BaseModel):
    """Raw sample row shown in the selector detail view."""
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    page_url: str
    target_selector: str
    interaction_latency_ms: int
    long_task_ms: Optional[int] = None
    device_class: str
