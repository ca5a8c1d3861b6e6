from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from localfy.models.business import (
    SOCIAL_PLATFORMS,
    WEEKDAYS,
    Business,
    BusinessImage,
    BusinessVideo,
    DayHours,
    GeoPoint,
    MenuItem,
    SocialLinks,
    finite_float,
    parse_location,
)


def normalize_business(business_id: str, data: object) -> Business:
    """Build a fully-defaulted Business from an arbitrary remote payload.

    Never raises: malformed fields fall back to their defaults and malformed
    nested entries (images, videos, menu items) are dropped.
    """
    payload: Mapping[str, Any] = data if isinstance(data, Mapping) else {}
    now = datetime.now(timezone.utc)

    return Business(
        id=str(business_id),
        name=_text(payload.get("name")),
        description=_text(payload.get("description")),
        category=_text(payload.get("category")),
        address=_text(payload.get("address")),
        phone=_text(payload.get("phone")),
        email=_text(payload.get("email")),
        website=_text(payload.get("website")),
        location=_location(payload.get("location")),
        images=_images(payload.get("images")),
        videos=_videos(payload.get("videos")),
        business_hours=_business_hours(payload.get("businessHours")),
        payment_methods=_payment_methods(payload.get("paymentMethods")),
        social_links=_social_links(payload.get("socialLinks")),
        menu=_menu(payload.get("menu")),
        menu_url=_optional_text(payload.get("menuUrl")),
        rating=_number(payload.get("rating")),
        created_at=_timestamp(payload.get("createdAt"), default=now),
        updated_at=_timestamp(payload.get("updatedAt"), default=now),
        created_by=_optional_text(payload.get("createdBy")) or _optional_text(payload.get("ownerId")),
    )


def generate_entry_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:9]}"


def _text(value: object) -> str:
    return value if isinstance(value, str) else ""


def _optional_text(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _number(value: object) -> float:
    number = finite_float(value)
    return number if number is not None else 0.0


def _timestamp(value: object, *, default: datetime) -> datetime:
    if not isinstance(value, datetime):
        return default
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _location(value: object) -> GeoPoint | str | None:
    # JSON-encoded locations stay as strings; consumers parse them lazily.
    if isinstance(value, str):
        return value if value.strip() else None
    return parse_location(value)


def _entry_id(entry: Mapping[str, Any], prefix: str) -> str:
    raw_id = entry.get("id")
    if isinstance(raw_id, int) and not isinstance(raw_id, bool):
        try:
            raw_id = str(raw_id)
        except ValueError:
            # Beyond the interpreter's int-to-str digit limit.
            raw_id = None
    if isinstance(raw_id, str) and raw_id.strip():
        return raw_id
    return generate_entry_id(prefix)


def _images(value: object) -> list[BusinessImage]:
    if not isinstance(value, list):
        return []
    return [
        BusinessImage(
            id=_entry_id(item, "img"),
            url=item["url"],
            is_main=bool(item.get("isMain")),
        )
        for item in value
        if isinstance(item, Mapping) and _optional_text(item.get("url"))
    ]


def _videos(value: object) -> list[BusinessVideo]:
    if not isinstance(value, list):
        return []
    return [
        BusinessVideo(
            id=_entry_id(item, "video"),
            url=item["url"],
            thumbnail=_optional_text(item.get("thumbnail")),
        )
        for item in value
        if isinstance(item, Mapping) and _optional_text(item.get("url"))
    ]


def _menu(value: object) -> list[MenuItem]:
    if not isinstance(value, list):
        return []
    items: list[MenuItem] = []
    for item in value:
        if not isinstance(item, Mapping) or not _optional_text(item.get("name")):
            continue
        price = finite_float(item.get("price"))
        if price is None:
            continue
        items.append(
            MenuItem(
                id=_entry_id(item, "menu"),
                name=item["name"],
                description=_optional_text(item.get("description")),
                price=price,
                image_url=_optional_text(item.get("imageUrl")),
                category=_optional_text(item.get("category")),
            )
        )
    return items


def _business_hours(value: object) -> dict[str, DayHours] | None:
    if not isinstance(value, Mapping):
        return None

    hours: dict[str, DayHours] = {}
    for day in WEEKDAYS:
        entry = value.get(day)
        if not isinstance(entry, Mapping):
            continue
        open_time = entry.get("open")
        close_time = entry.get("close")
        if not isinstance(open_time, str) or not isinstance(close_time, str):
            continue
        closed = entry.get("closed")
        hours[day] = DayHours(
            open=open_time,
            close=close_time,
            closed=closed if isinstance(closed, bool) else None,
        )
    return hours or None


def _payment_methods(value: object) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, str) and item.strip()]


def _social_links(value: object) -> SocialLinks | None:
    if not isinstance(value, Mapping):
        return None
    links = {
        platform: value[platform]
        for platform in SOCIAL_PLATFORMS
        if _optional_text(value.get(platform))
    }
    return SocialLinks(**links) if links else None
