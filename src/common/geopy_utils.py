from typing import List, Tuple

from geopy.distance import geodesic
from geopy.point import Point

from common.models import GeoSample
from common.utils import bearing_deg

def generate_steps(start_lat, start_lon, end_lat, end_lon, step_m=10) -> List[Tuple[float, float]]:
    # points every step_m metres along the geodesic, both ends included
    start = Point(start_lat, start_lon)
    total_m = geodesic(start, Point(end_lat, end_lon)).meters
    heading = bearing_deg(start_lat, start_lon, end_lat, end_lon)

    points = [(start_lat, start_lon)]
    travelled = step_m
    while travelled < total_m:
        p = geodesic(meters=travelled).destination(start, bearing=heading)
        points.append((p.latitude, p.longitude))
        travelled += step_m
    if total_m > 0:
        points.append((end_lat, end_lon))
    return points

def simulate_drive(start_lat, start_lon, end_lat, end_lon, speed_kmh, interval_s=1.0,
                   start_time=0.0) -> List[GeoSample]:
    # constant speed drive, one fix every interval_s
    step_m = max(speed_kmh / 3.6 * interval_s, 1.0)
    heading = bearing_deg(start_lat, start_lon, end_lat, end_lon)
    return [
        GeoSample(
            latitude=lat,
            longitude=lon,
            speed_mps=speed_kmh / 3.6,
            heading_deg=heading,
            timestamp=start_time + i * interval_s,
        )
        for i, (lat, lon) in enumerate(generate_steps(start_lat, start_lon, end_lat, end_lon, step_m))
    ]
