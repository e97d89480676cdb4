"""
Great-circle distance.

Pure and deterministic: no network, no state.
"""

import math

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Haversine distance between two points, in kilometers.

    Args:
        lat1, lng1: First point in degrees
        lat2, lng2: Second point in degrees

    Returns:
        float: Great-circle distance on a sphere of radius 6371 km
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Rounding can push a marginally above 1 for antipodal points
    a = min(1.0, a)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))
