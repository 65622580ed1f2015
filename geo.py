import math

EARTH_RADIUS_MILES = 3959.0


def distance(a, b) -> float:
    """Great-circle (haversine) distance in miles between two positions.

    Inputs are anything with ``latitude``/``longitude`` attributes; callers
    are expected to have rejected NaN coordinates already.
    """
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    h = min(1.0, h)
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def within_reach(origin, origin_radius: float, target, target_radius: float) -> bool:
    # Inclusive at the boundary
    return distance(origin, target) <= max(origin_radius, target_radius)
