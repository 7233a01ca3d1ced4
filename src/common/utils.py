import math

EARTH_RADIUS_KM = 6371.0

COMPASS_POINTS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]


def haversine_km(lat1, lon1, lat2, lon2) -> float:
    # great-circle distance between two fixes
    # shared by the override store dedup and the trip distance totals
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi/2)**2 + math.cos(phi1)*math.cos(phi2)*(math.sin(dlambda/2)**2)
    return EARTH_RADIUS_KM * (2 * math.atan2(math.sqrt(a), math.sqrt(1 - a)))

def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    # calculates heading from pos1 to pos2 in degrees
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dlambda = math.radians(lon2 - lon1)

    x = math.sin(dlambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlambda)

    brng = math.degrees(math.atan2(x, y))
    # normalize to [0, 360]
    return (brng + 360.0) % 360.0

def compass_direction(heading_deg: float) -> str:
    # 8-point label, 0 = north
    idx = int(round(heading_deg / 45.0)) % 8
    return COMPASS_POINTS[idx]
