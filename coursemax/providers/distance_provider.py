# coursemax/providers/distance_provider.py
import logging
from abc import ABC, abstractmethod
from typing import NamedTuple, Optional, Union
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import ComputationImpossible, DependencyUnavailable, ProviderMisconfigured
from ..logic.pricing import haversine_distance

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)


class Coordinates(NamedTuple):
    lon: float
    lat: float


class RouteEstimate(NamedTuple):
    distance_meters: float
    duration_seconds: float

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000

    @property
    def duration_minutes(self) -> int:
        return int(round(self.duration_seconds / 60))


Location = Union[str, Coordinates]


def build_session(max_retries: int) -> requests.Session:
    """HTTP session retrying idempotent calls with exponential backoff."""
    retry = Retry(
        total=max_retries,
        backoff_factor=0.5,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset({"GET"}),
    )
    session = requests.Session()
    session.mount("https://", HTTPAdapter(max_retries=retry))
    session.mount("http://", HTTPAdapter(max_retries=retry))
    return session


class DistanceProvider(ABC):
    """Driving distance between two places.

    Failures are typed: ``ComputationImpossible`` when the provider answered
    but could not resolve the address or the route, ``DependencyUnavailable``
    when it could not be reached in time.
    """

    @abstractmethod
    def geocode(self, address: str) -> Coordinates:
        raise NotImplementedError()

    @abstractmethod
    def route(self, origin: Coordinates, destination: Coordinates) -> RouteEstimate:
        raise NotImplementedError()

    def measure(self, origin: Location, destination: Location) -> RouteEstimate:
        if isinstance(origin, str):
            origin = self.geocode(origin)
        if isinstance(destination, str):
            destination = self.geocode(destination)
        return self.route(origin, destination)


class _HttpDistanceProvider(DistanceProvider):
    def __init__(self, *, timeout: float, max_retries: int, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or build_session(max_retries)

    def _get_json(self, url, params, what, headers=None):
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"{what} request failed: {e}")
            raise DependencyUnavailable(detail=f"{what} unavailable") from e

        if response.status_code in (401, 403):
            logger.error(f"❌ {what} rejected our credentials (HTTP {response.status_code}): check the access token")
            raise ProviderMisconfigured(detail=f"{what} returned HTTP {response.status_code}")
        if response.status_code in RETRY_STATUSES:
            logger.error(f"{what} returned HTTP {response.status_code}")
            raise DependencyUnavailable(detail=f"{what} returned HTTP {response.status_code}")
        if not response.ok:
            logger.warning(f"{what} rejected the request: HTTP {response.status_code}")
            raise ComputationImpossible(detail=f"{what} returned HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise DependencyUnavailable(detail=f"{what} returned an unreadable body") from e


class MapboxDistanceProvider(_HttpDistanceProvider):
    GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"
    DIRECTIONS_URL = "https://api.mapbox.com/directions/v5/mapbox/driving/{origin};{destination}"

    def __init__(self, access_token: str, *, country: str = "CA", timeout: float = 10, max_retries: int = 2,
                 session: Optional[requests.Session] = None):
        if not access_token:
            raise RuntimeError("MAPBOX_ACCESS_TOKEN is required for the Mapbox distance provider.")
        super().__init__(timeout=timeout, max_retries=max_retries, session=session)
        self.access_token = access_token
        self.country = country

    def geocode(self, address: str) -> Coordinates:
        url = self.GEOCODING_URL.format(query=quote(address, safe=""))
        data = self._get_json(
            url,
            {"access_token": self.access_token, "country": self.country, "limit": 1},
            "Mapbox geocoding",
        )
        features = data.get("features") or []
        if not features:
            logger.info(f"No coordinates found for address: '{address}'")
            raise ComputationImpossible(detail=f"No coordinates found for address: {address}")
        lon, lat = features[0]["center"]
        return Coordinates(lon=float(lon), lat=float(lat))

    def route(self, origin: Coordinates, destination: Coordinates) -> RouteEstimate:
        url = self.DIRECTIONS_URL.format(
            origin=f"{origin.lon},{origin.lat}",
            destination=f"{destination.lon},{destination.lat}",
        )
        data = self._get_json(url, {"access_token": self.access_token, "overview": "false"}, "Mapbox directions")
        routes = data.get("routes") or []
        if not routes:
            raise ComputationImpossible(detail="No route found between origin and destination")
        best = routes[0]
        return RouteEstimate(distance_meters=float(best["distance"]), duration_seconds=float(best["duration"]))


class NominatimDistanceProvider(_HttpDistanceProvider):
    """OpenStreetMap geocoding plus a straight-line estimate.

    Nominatim has no routing, so distance is the great-circle distance and the
    duration assumes an average driving speed.
    """

    SEARCH_URL = "https://nominatim.openstreetmap.org/search"

    def __init__(self, user_agent: str, *, speed_kmh: float = 30, timeout: float = 10, max_retries: int = 2,
                 session: Optional[requests.Session] = None):
        super().__init__(timeout=timeout, max_retries=max_retries, session=session)
        # Nominatim refuses requests without an identifying User-Agent
        self.headers = {"User-Agent": user_agent}
        self.speed_kmh = speed_kmh

    def geocode(self, address: str) -> Coordinates:
        if not address or not address.strip():
            raise ComputationImpossible(detail="Empty address")
        results = self._get_json(
            self.SEARCH_URL,
            {"q": address, "format": "json", "limit": 1, "addressdetails": 0},
            "Nominatim geocoding",
            headers=self.headers,
        )
        if not results:
            logger.info(f"Geocoding found nothing for '{address}'")
            raise ComputationImpossible(detail=f"No coordinates found for address: {address}")
        return Coordinates(lon=float(results[0]["lon"]), lat=float(results[0]["lat"]))

    def route(self, origin: Coordinates, destination: Coordinates) -> RouteEstimate:
        km = haversine_distance(origin.lat, origin.lon, destination.lat, destination.lon)
        return RouteEstimate(distance_meters=km * 1000, duration_seconds=km / self.speed_kmh * 3600)


def get_distance_provider(config) -> DistanceProvider:
    mode = (config.get("DISTANCE_PROVIDER") or "mapbox").lower()
    timeout = config.get("DISTANCE_TIMEOUT_SECONDS", 10)
    max_retries = config.get("DISTANCE_MAX_RETRIES", 2)
    if mode == "nominatim":
        logger.info("Using Nominatim distance provider.")
        return NominatimDistanceProvider(
            config.get("NOMINATIM_USER_AGENT"),
            speed_kmh=config.get("ASSUMED_DRIVING_SPEED_KMH", 30),
            timeout=timeout,
            max_retries=max_retries,
        )
    logger.info("Using Mapbox distance provider.")
    return MapboxDistanceProvider(config.get("MAPBOX_ACCESS_TOKEN"), timeout=timeout, max_retries=max_retries)
