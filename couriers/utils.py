# couriers/utils.py
"""
Distance and ETA helpers used for courier ranking and delivery estimates.
"""
import math

EARTH_RADIUS_KM = 6371

# Average speeds in city traffic (km/h)
VEHICLE_SPEEDS = {
    'motor': 25,
    'mobil': 20,
    'sepeda': 15,
    'jalan_kaki': 5,
}

ETA_BUFFER = 1.2  # traffic, stops


def haversine_km(lat1, lng1, lat2, lng2):
    """Great-circle distance between two points, in kilometers."""
    lat1, lng1, lat2, lng2 = (float(v) for v in (lat1, lng1, lat2, lng2))
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def estimate_eta_minutes(distance_km, vehicle_type='motor'):
    speed = VEHICLE_SPEEDS.get(vehicle_type, VEHICLE_SPEEDS['motor'])
    minutes = math.ceil(float(distance_km) / speed * 60)
    return math.ceil(minutes * ETA_BUFFER)


def format_eta(minutes):
    if minutes < 1:
        return 'Tiba sebentar lagi'
    if minutes < 60:
        return f"{minutes} menit"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"{hours} jam"
    return f"{hours} jam {rest} menit"


def format_distance(km):
    if km < 1:
        return f"{round(km * 1000)} m"
    return f"{km:.1f} km"


def delivery_estimate(from_lat, from_lng, to_lat, to_lng, vehicle_type='motor'):
    distance = haversine_km(from_lat, from_lng, to_lat, to_lng)
    eta = estimate_eta_minutes(distance, vehicle_type)
    return {
        'distance_km': round(distance, 2),
        'distance_formatted': format_distance(distance),
        'eta_minutes': eta,
        'eta_formatted': format_eta(eta),
    }
