"""Great-circle distance and radius filtering for the nearby-reports path."""
from __future__ import annotations

import math
from typing import Iterable

from crimesync.errors import InvalidInput
from crimesync.models import Report

EARTH_RADIUS_METERS = 6_371_000


def validate_coordinates(latitude: float, longitude: float):
    """Raise InvalidInput unless lat ∈ [-90, 90] and lon ∈ [-180, 180]."""
    if not isinstance(latitude, (int, float)) or not math.isfinite(latitude):
        raise InvalidInput(f"Invalid latitude: {latitude!r}")
    if not isinstance(longitude, (int, float)) or not math.isfinite(longitude):
        raise InvalidInput(f"Invalid longitude: {longitude!r}")
    if not -90 <= latitude <= 90:
        raise InvalidInput(f"Latitude must be between -90 and 90 (got {latitude})")
    if not -180 <= longitude <= 180:
        raise InvalidInput(f"Longitude must be between -180 and 180 (got {longitude})")


def validate_radius(radius_km: float):
    if not isinstance(radius_km, (int, float)) or not math.isfinite(radius_km) or radius_km <= 0:
        raise InvalidInput(f"Radius must be a positive number of km (got {radius_km!r})")


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in meters on a mean-radius Earth."""
    validate_coordinates(lat1, lon1)
    validate_coordinates(lat2, lon2)

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def format_km(meters: float) -> str:
    return f"{meters / 1000:.2f}"


def filter_within_radius(
    center: tuple[float, float],
    radius_km: float,
    candidates: Iterable[Report],
) -> list[Report]:
    """Reports within radius_km of center (inclusive), nearest first.

    Returned copies carry distance_meters / distance_km for display; the
    inputs are not modified.
    """
    lat, lon = center
    validate_coordinates(lat, lon)
    validate_radius(radius_km)
    limit = radius_km * 1000

    within: list[tuple[float, Report]] = []
    for report in candidates:
        meters = distance(lat, lon, report.latitude, report.longitude)
        if meters <= limit:
            within.append((meters, report))

    within.sort(key=lambda pair: pair[0])
    return [
        report.model_copy(update={
            "distance_meters": round(meters),
            "distance_km": format_km(meters),
        })
        for meters, report in within
    ]
