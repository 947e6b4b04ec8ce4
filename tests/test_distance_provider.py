"""Tests for the Mapbox and Nominatim distance providers (HTTP mocked)."""

from unittest.mock import MagicMock

import pytest
import requests

from coursemax.errors import ComputationImpossible, DependencyUnavailable, ProviderMisconfigured
from coursemax.providers.distance_provider import (
    Coordinates,
    MapboxDistanceProvider,
    NominatimDistanceProvider,
    get_distance_provider,
)


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.json.return_value = payload
    return response


def _mapbox(*responses):
    session = MagicMock()
    session.get.side_effect = list(responses)
    return MapboxDistanceProvider("pk.test", session=session, timeout=3), session


GEOCODE_STORE = {"features": [{"center": [-74.1300, 45.2553]}]}
GEOCODE_CLIENT = {"features": [{"center": [-74.1326, 45.2597]}]}
ROUTE = {"routes": [{"distance": 4200.0, "duration": 840.0}]}


def test_mapbox_measures_addresses():
    provider, session = _mapbox(_response(payload=GEOCODE_STORE), _response(payload=GEOCODE_CLIENT),
                                _response(payload=ROUTE))

    estimate = provider.measure("12 rue Victoria, Valleyfield", "45 rue Nicholson, Valleyfield")

    assert estimate.distance_km == 4.2
    assert estimate.duration_minutes == 14
    geocode_call = session.get.call_args_list[0]
    assert geocode_call.kwargs["params"]["country"] == "CA"
    assert geocode_call.kwargs["params"]["limit"] == 1
    assert geocode_call.kwargs["timeout"] == 3
    route_url = session.get.call_args_list[2].args[0]
    assert route_url.endswith("/driving/-74.13,45.2553;-74.1326,45.2597")


def test_mapbox_skips_geocoding_for_known_coordinates():
    provider, session = _mapbox(_response(payload=GEOCODE_CLIENT), _response(payload=ROUTE))

    provider.measure(Coordinates(lon=-74.13, lat=45.2553), "45 rue Nicholson, Valleyfield")

    assert session.get.call_count == 2


def test_unknown_address_is_computation_impossible():
    provider, _ = _mapbox(_response(payload={"features": []}))

    with pytest.raises(ComputationImpossible):
        provider.geocode("Nowhere")


def test_no_route_is_computation_impossible():
    provider, _ = _mapbox(_response(payload={"routes": []}))

    with pytest.raises(ComputationImpossible):
        provider.route(Coordinates(0, 0), Coordinates(1, 1))


def test_timeout_is_dependency_unavailable():
    session = MagicMock()
    session.get.side_effect = requests.exceptions.Timeout("read timed out")
    provider = MapboxDistanceProvider("pk.test", session=session)

    with pytest.raises(DependencyUnavailable) as exc_info:
        provider.geocode("12 rue Victoria")
    assert exc_info.value.retryable


@pytest.mark.parametrize("status_code, error", [(401, DependencyUnavailable), (503, DependencyUnavailable),
                                                (422, ComputationImpossible)])
def test_http_errors_are_typed(status_code, error):
    provider, _ = _mapbox(_response(status_code=status_code, payload={}))

    with pytest.raises(error):
        provider.geocode("12 rue Victoria")


@pytest.mark.parametrize("status_code", [401, 403])
def test_rejected_token_is_not_retryable(status_code):
    provider, _ = _mapbox(_response(status_code=status_code, payload={}))

    with pytest.raises(ProviderMisconfigured) as exc_info:
        provider.geocode("12 rue Victoria")
    assert not exc_info.value.retryable
    assert exc_info.value.status_code == 503
    assert "retryable" not in exc_info.value.to_dict()


def test_mapbox_requires_token():
    with pytest.raises(RuntimeError):
        MapboxDistanceProvider("")


def test_nominatim_geocodes_and_estimates_by_speed():
    session = MagicMock()
    session.get.return_value = _response(payload=[{"lat": "45.2597", "lon": "-74.1326"}])
    provider = NominatimDistanceProvider("CourseMaxTests/1.0", speed_kmh=30, session=session)

    coords = provider.geocode("45 rue Nicholson, Valleyfield")
    estimate = provider.route(Coordinates(lon=-74.1326, lat=45.2597), Coordinates(lon=-74.1326, lat=45.3497))

    assert coords == Coordinates(lon=-74.1326, lat=45.2597)
    assert session.get.call_args.kwargs["headers"] == {"User-Agent": "CourseMaxTests/1.0"}
    assert 9.9 < estimate.distance_km < 10.1
    assert 19 <= estimate.duration_minutes <= 21


def test_nominatim_empty_result():
    session = MagicMock()
    session.get.return_value = _response(payload=[])
    provider = NominatimDistanceProvider("CourseMaxTests/1.0", session=session)

    with pytest.raises(ComputationImpossible):
        provider.geocode("Nowhere")


def test_factory_selects_provider():
    assert isinstance(get_distance_provider({"DISTANCE_PROVIDER": "nominatim", "NOMINATIM_USER_AGENT": "x"}),
                      NominatimDistanceProvider)
    assert isinstance(get_distance_provider({"DISTANCE_PROVIDER": "mapbox", "MAPBOX_ACCESS_TOKEN": "pk.x"}),
                      MapboxDistanceProvider)
