import math

from localfy.models.business import Business, GeoPoint

EARTH_RADIUS_KM = 6371.0


def distance_km(origin: GeoPoint, target: GeoPoint) -> float:
    d_lat = math.radians(target.latitude - origin.latitude)
    d_lon = math.radians(target.longitude - origin.longitude)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin.latitude))
        * math.cos(math.radians(target.latitude))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_distance(distance: float) -> str:
    if distance < 1:
        return f"{round(distance * 1000)} m"
    return f"{distance:.1f} km"


def distance_to_business(origin: GeoPoint, business: Business) -> str | None:
    coordinates = business.coordinates()
    if coordinates is None:
        return None
    return format_distance(distance_km(origin, coordinates))
