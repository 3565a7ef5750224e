"""
Pydantic models for analyzer output and API responses.
"""

import math
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

CATEGORIES = ("task", "idea", "mood")
STATUSES = ("pending", "completed")
MAX_LIST_ITEMS = 5


class AnalysisFields(BaseModel):
    """
    Structured analyzer output after normalization.

    Every field except `category` is coerced rather than rejected: a value of
    the wrong type becomes None (or an empty list), so a partially useful
    analysis is still accepted.
    """

    model_config = ConfigDict(extra="ignore")

    # ========== common ==========
    category: Literal["task", "idea", "mood"]
    title: Optional[str] = None
    content: Optional[str] = None
    summary: Optional[str] = None
    tags: List[str] = []
    keywords: List[str] = []

    # ========== task ==========
    time: Optional[str] = None  # HH:mm
    date: Optional[str] = None  # YYYY-MM-DD
    location: Optional[str] = None
    reminders: List[str] = []
    status: Optional[Literal["pending", "completed"]] = None
    completed: Optional[bool] = None

    # ========== mood ==========
    emotion_type: Optional[str] = None
    intensity: Optional[float] = None  # 1-10

    @field_validator(
        "title", "content", "summary", "time", "date", "location", "emotion_type", mode="before"
    )
    @classmethod
    def only_strings(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None

    @field_validator("tags", "keywords", "reminders", mode="before")
    @classmethod
    def clean_string_list(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        cleaned = [v.strip() for v in value if isinstance(v, str) and v.strip()]
        return cleaned[:MAX_LIST_ITEMS]

    @field_validator("status", mode="before")
    @classmethod
    def known_status(cls, value: Any) -> Any:
        return value if isinstance(value, str) and value in STATUSES else None

    @field_validator("completed", mode="before")
    @classmethod
    def only_booleans(cls, value: Any) -> Any:
        return value if isinstance(value, bool) else None

    @field_validator("intensity", mode="before")
    @classmethod
    def finite_number(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return None
        try:
            number = float(value.strip() if isinstance(value, str) else value)
        except (OverflowError, ValueError):
            return None
        return number if math.isfinite(number) else None


class IngestResponseData(BaseModel):
    id: int
    category: str
    title: Optional[str] = None
    summary: Optional[str] = None
    keywords: List[str] = []
    tags: List[str] = []
    created_at: Optional[datetime] = None
