import httpx
import pytest

from src.fleetplan.config import settings
from src.fleetplan.services.routing.matrix import LARGE_PENALTY, build_travel_matrix
from src.fleetplan.services.routing.osrm_client import OSRMClient, decode_polyline


def _table_handler(requests: list, fail_when=lambda lats: False):
    """Fake OSRM table service: duration = 10 * |lat_i - lat_j|, distance = 100 * the same."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        coordinates = request.url.path.split("/")[-1]
        lats = [float(pair.split(",")[1]) for pair in coordinates.split(";")]
        if fail_when(lats):
            return httpx.Response(500, json={"code": "Error"})
        sources = request.url.params.get("sources")
        destinations = request.url.params.get("destinations")
        src = [int(i) for i in sources.split(";")] if sources else list(range(len(lats)))
        dst = [int(i) for i in destinations.split(";")] if destinations else list(range(len(lats)))
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "durations": [[abs(lats[i] - lats[j]) * 10 for j in dst] for i in src],
                "distances": [[abs(lats[i] - lats[j]) * 100 for j in dst] for i in src],
            },
        )

    return handler


def _patch_transport(monkeypatch, handler):
    monkeypatch.setattr(
        OSRMClient,
        "_get_client",
        lambda self: httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_small_table_is_one_request(monkeypatch):
    requests: list = []
    _patch_transport(monkeypatch, _table_handler(requests))
    client = OSRMClient(base_url="http://osrm.test")

    table = client.table([(0.0, 0.0), (1.0, 0.0), (3.0, 0.0)])

    assert len(requests) == 1
    assert "/table/v1/driving/" in str(requests[0].url)
    assert table["durations"][0] == [0, 10, 30]
    assert table["distances"][2][1] == 200


def test_large_table_is_chunked_and_reassembled(monkeypatch):
    requests: list = []
    _patch_transport(monkeypatch, _table_handler(requests))
    client = OSRMClient(base_url="http://osrm.test", max_coordinates_per_request=3, max_parallel_requests=2)
    coordinates = [(float(i), 0.0) for i in range(7)]

    table = client.table(coordinates)

    # ranges [0:3], [3:6], [6:7] -> 3 x 3 chunk pairs
    assert len(requests) == 9
    assert table["durations"] == [[abs(i - j) * 10.0 for j in range(7)] for i in range(7)]


def test_failed_chunks_leave_gaps(monkeypatch):
    requests: list = []
    # only the [6:7] -> [6:7] pair carries exactly two coordinates
    _patch_transport(monkeypatch, _table_handler(requests, fail_when=lambda lats: len(lats) == 2))
    client = OSRMClient(base_url="http://osrm.test", max_retries=0, max_coordinates_per_request=3)

    table = client.table([(float(i), 0.0) for i in range(7)])

    assert table["durations"][6][6] is None
    assert table["durations"][6][5] == 10.0


def test_mostly_failed_chunks_raise(monkeypatch):
    _patch_transport(monkeypatch, _table_handler([], fail_when=lambda lats: True))
    client = OSRMClient(base_url="http://osrm.test", max_retries=0, max_coordinates_per_request=3)

    with pytest.raises(ConnectionError):
        client.table([(float(i), 0.0) for i in range(7)])


def test_client_requires_base_url():
    with pytest.raises(ValueError):
        OSRMClient()


def test_decode_polyline():
    points = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")

    assert points == [
        pytest.approx((38.5, -120.2)),
        pytest.approx((40.7, -120.95)),
        pytest.approx((43.252, -126.453)),
    ]


def test_matrix_uses_osrm_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "osrm_base_url", "http://osrm.test")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"code": "Ok", "durations": [[0, None], [12.7, 0]], "distances": [[0, 90], [95.2, 0]]},
        )

    _patch_transport(monkeypatch, handler)

    matrix = build_travel_matrix([(-12.0, -77.0), (-12.1, -77.0)])

    assert matrix.source == "osrm"
    assert matrix.durations == [[0, LARGE_PENALTY], [12, 0]]
    assert matrix.distances == [[0, 90], [95, 0]]


def test_matrix_falls_back_to_haversine_when_osrm_is_down(monkeypatch):
    monkeypatch.setattr(settings, "osrm_base_url", "http://osrm.test")
    monkeypatch.setattr(settings, "osrm_max_retries", 0)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    _patch_transport(monkeypatch, handler)

    matrix = build_travel_matrix([(-12.0, -77.0), (-12.1, -77.0)])

    assert matrix.source == "haversine"
    assert matrix.distances[0][1] == pytest.approx(11_119, abs=5)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, json={"code": "Error"}),
        httpx.Response(200, json={"code": "NoSegment", "message": "no road"}),
    ],
)
def test_matrix_falls_back_to_haversine_on_osrm_errors(monkeypatch, response):
    monkeypatch.setattr(settings, "osrm_base_url", "http://osrm.test")
    monkeypatch.setattr(settings, "osrm_max_retries", 0)
    _patch_transport(monkeypatch, lambda request: response)

    matrix = build_travel_matrix([(-12.0, -77.0), (-12.1, -77.0)])

    assert matrix.source == "haversine"
    assert matrix.distances[1][0] == pytest.approx(11_119, abs=5)


def test_route_requests_full_polyline_geometry(monkeypatch):
    requests: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "routes": [{"geometry": "_p~iF~ps|U_ulLnnqC_mqNvxq`@", "distance": 1500.0, "duration": 180.0}],
            },
        )

    _patch_transport(monkeypatch, handler)
    client = OSRMClient(base_url="http://osrm.test/")

    route = client.route([(-12.0, -77.0), (-12.1, -77.05)])

    assert requests[0].url.path == "/route/v1/driving/-77.0,-12.0;-77.05,-12.1"
    assert requests[0].url.params["overview"] == "full"
    assert requests[0].url.params["geometries"] == "polyline"
    assert route["routes"][0]["distance"] == 1500.0
    assert len(decode_polyline(route["routes"][0]["geometry"])) == 3


def test_route_rejects_single_waypoint_and_osrm_errors(monkeypatch):
    _patch_transport(monkeypatch, lambda request: httpx.Response(200, json={"code": "NoRoute", "message": "none"}))
    client = OSRMClient(base_url="http://osrm.test")

    with pytest.raises(ValueError):
        client.route([(-12.0, -77.0)])
    with pytest.raises(ValueError, match="none"):
        client.route([(-12.0, -77.0), (-12.1, -77.0)])
