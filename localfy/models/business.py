import json
import math
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
SOCIAL_PLATFORMS = ("facebook", "instagram", "twitter", "tiktok", "website")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RemoteModel(BaseModel):
    # Remote documents use camelCase keys; Python code uses snake_case attributes.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeoPoint(RemoteModel):
    latitude: float
    longitude: float


class DayHours(RemoteModel):
    open: str
    close: str
    closed: bool | None = None


class SocialLinks(RemoteModel):
    facebook: str | None = None
    instagram: str | None = None
    twitter: str | None = None
    tiktok: str | None = None
    website: str | None = None


class BusinessImage(RemoteModel):
    id: str
    url: str
    is_main: bool = False


class BusinessVideo(RemoteModel):
    id: str
    url: str
    thumbnail: str | None = None


class MenuItem(RemoteModel):
    id: str
    name: str
    description: str | None = None
    price: float
    image_url: str | None = None
    category: str | None = None


class Business(RemoteModel):
    id: str
    name: str = ""
    description: str = ""
    category: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    location: GeoPoint | str | None = None
    images: list[BusinessImage] = Field(default_factory=list)
    videos: list[BusinessVideo] = Field(default_factory=list)
    business_hours: dict[str, DayHours] | None = None
    payment_methods: list[str] | None = None
    social_links: SocialLinks | None = None
    menu: list[MenuItem] = Field(default_factory=list)
    menu_url: str | None = None
    rating: float = 0.0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    created_by: str | None = None

    def coordinates(self) -> GeoPoint | None:
        return parse_location(self.location)

    def main_image(self) -> BusinessImage | None:
        for image in self.images:
            if image.is_main:
                return image
        return self.images[0] if self.images else None

    def is_open_at(self, moment: datetime) -> bool:
        if not self.business_hours:
            return False

        day_hours = self.business_hours.get(WEEKDAYS[moment.weekday()])
        if day_hours is None or day_hours.closed:
            return False

        open_minutes = _minutes_of_day(day_hours.open)
        close_minutes = _minutes_of_day(day_hours.close)
        if open_minutes is None or close_minutes is None:
            return False

        current = moment.hour * 60 + moment.minute
        return open_minutes <= current <= close_minutes


def parse_location(value: object) -> GeoPoint | None:
    if isinstance(value, GeoPoint):
        return value
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (ValueError, RecursionError):
            return None
    if not isinstance(value, dict):
        return None

    latitude = finite_float(value.get("latitude"))
    longitude = finite_float(value.get("longitude"))
    if latitude is None or longitude is None:
        return None
    return GeoPoint(latitude=latitude, longitude=longitude)


def finite_float(value: object) -> float | None:
    """Numeric value as a finite float; None for bools, non-numbers, overflow, NaN and infinities."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _minutes_of_day(value: str) -> int | None:
    parts = str(value or "").strip().split(":")
    try:
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        return None
    return hours * 60 + minutes


class RawBusinessDocument(BaseModel):
    """A remote payload exactly as stored, before normalization."""

    id: str
    data: dict[str, Any] = Field(default_factory=dict)


class PageCursor(RemoteModel):
    created_at: datetime
    document_id: str


class BusinessPage(BaseModel):
    documents: list[RawBusinessDocument] = Field(default_factory=list)
    cursor: PageCursor | None = None
    has_more: bool = False


class CacheEnvelope(RemoteModel):
    businesses: list[Business] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    last_updated: int
    # Envelopes written before the cursor was persisted carry none.
    cursor: PageCursor | None = None
