from localfy.models.business import (
    Business,
    BusinessImage,
    BusinessPage,
    BusinessVideo,
    CacheEnvelope,
    DayHours,
    GeoPoint,
    MenuItem,
    PageCursor,
    RawBusinessDocument,
    SocialLinks,
    parse_location,
)

__all__ = [
    "Business",
    "BusinessImage",
    "BusinessPage",
    "BusinessVideo",
    "CacheEnvelope",
    "DayHours",
    "GeoPoint",
    "MenuItem",
    "PageCursor",
    "RawBusinessDocument",
    "SocialLinks",
    "parse_location",
]
