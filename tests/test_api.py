"""
Tests for API endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from overlog.main import app, create_app
from overlog.services import repository
from overlog.services.repository import init_repository


SAMPLE_CSV = """timestamp,latitude,longitude,altitude,speed
2024-01-15T10:00:00Z,45.000,7.000,250.0,8.0
2024-01-15T10:00:01Z,45.001,7.001,251.0,10.0
2024-01-15T10:00:02Z,45.002,7.002,252.0,12.0
"""

LATER_CSV = """timestamp,speed
2024-02-01T08:00:00Z,1.0
2024-02-01T08:00:01Z,2.0
"""

SAMPLE_GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="TestDevice" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><trkseg>
    <trkpt lat="45.0" lon="7.0"><ele>250</ele><time>2024-01-15T10:00:00Z</time></trkpt>
    <trkpt lat="45.001" lon="7.001"><ele>251</ele><time>2024-01-15T10:00:01Z</time></trkpt>
  </trkseg></trk>
</gpx>
"""


@pytest.fixture
def test_data_folder(tmp_path):
    """Create a test data folder with sample telemetry files."""
    data_folder = tmp_path / "telemetry"
    data_folder.mkdir()

    (data_folder / "lap_001.csv").write_text(SAMPLE_CSV)
    (data_folder / "lap_002.csv").write_text(LATER_CSV)
    (data_folder / "notes.txt").write_text("not telemetry")

    return data_folder


@pytest.fixture
def client_with_data(test_data_folder):
    """Create test client with initialized repository."""
    init_repository(test_data_folder)
    yield TestClient(app)
    repository._repository = None


@pytest.fixture
def client():
    """Create test client without initialized repository."""
    repository._repository = None
    yield TestClient(app)
    repository._repository = None


def first_series_id(client, name="lap_001"):
    for entry in client.get("/series").json():
        if entry["name"] == name:
            return entry["id"]
    raise AssertionError(f"{name} not listed")


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, client):
        """Root endpoint should return basic info."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "overlog"
        assert data["status"] == "running"

    def test_health_endpoint(self, client):
        """Health endpoint should return status."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["series_count"] == 0

    def test_startup_indexes_data_folder(self, test_data_folder):
        repository._repository = None

        with TestClient(create_app(test_data_folder)) as startup_client:
            data = startup_client.get("/health").json()

        repository._repository = None
        assert data["data_folder"] == str(test_data_folder)
        assert data["series_count"] == 2

    def test_startup_without_folder(self, tmp_path, monkeypatch):
        repository._repository = None
        monkeypatch.setenv("OVERLOG_DATA_FOLDER", str(tmp_path / "missing"))

        with TestClient(create_app()) as startup_client:
            data = startup_client.get("/health").json()

        repository._repository = None
        assert data["data_folder"] is None


class TestFolderEndpoints:
    """Tests for folder management endpoints."""

    def test_get_folder_info_empty(self, client):
        """Should return empty info when no folder set."""
        response = client.get("/folder")

        assert response.status_code == 200
        data = response.json()
        assert data["path"] is None
        assert data["series_count"] == 0

    def test_set_folder(self, client, test_data_folder):
        """Should set folder and index telemetry files only."""
        response = client.post("/folder", json={"path": str(test_data_folder)})

        assert response.status_code == 200
        data = response.json()
        assert data["path"] == str(test_data_folder)
        assert data["series_count"] == 2

    def test_set_nonexistent_folder(self, client, tmp_path):
        """Should return error for nonexistent folder."""
        response = client.post("/folder", json={"path": str(tmp_path / "nonexistent")})

        assert response.status_code == 400

    def test_set_folder_to_file(self, client, test_data_folder):
        response = client.post("/folder", json={"path": str(test_data_folder / "notes.txt")})

        assert response.status_code == 400

    def test_rescan_folder(self, client_with_data, test_data_folder):
        """Should rescan folder for new files."""
        (test_data_folder / "lap_003.gpx").write_text(SAMPLE_GPX)

        response = client_with_data.post("/folder/rescan")

        assert response.status_code == 200
        assert response.json()["series_count"] == 3

    def test_rescan_without_folder(self, client):
        assert client.post("/folder/rescan").status_code == 400


class TestSeriesEndpoints:
    """Tests for series listing and metadata."""

    def test_list_series(self, client_with_data):
        """Should list series newest first."""
        response = client_with_data.get("/series")

        assert response.status_code == 200
        data = response.json()
        assert [s["name"] for s in data] == ["lap_002", "lap_001"]

        entry = data[1]
        assert entry["format"] == "csv"
        assert entry["point_count"] == 3
        assert entry["duration"] == 2.0
        assert entry["total_distance"] > 0

    def test_unparseable_file_skipped(self, client_with_data, test_data_folder):
        (test_data_folder / "broken.csv").write_text("timestamp,speed\nyesterday,1.0\n")
        client_with_data.post("/folder/rescan")

        data = client_with_data.get("/series").json()

        assert len(data) == 2

    def test_get_series_detail(self, client_with_data):
        series_id = first_series_id(client_with_data)

        response = client_with_data.get(f"/series/{series_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == series_id
        assert data["source_file"] == "lap_001.csv"
        assert data["point_count"] == 3
        assert data["metadata"]["max_speed"] == 12.0
        assert data["metadata"]["source"] == "lap_001.csv"
        assert data["bounding_box"] == pytest.approx([45.0, 7.0, 45.002, 7.002])

    def test_series_without_positions_has_no_bounding_box(self, client_with_data):
        series_id = first_series_id(client_with_data, "lap_002")

        data = client_with_data.get(f"/series/{series_id}").json()

        assert data["bounding_box"] is None

    def test_get_series_not_found(self, client_with_data):
        """Should return 404 for nonexistent series."""
        response = client_with_data.get("/series/nonexistent_id")

        assert response.status_code == 404

    def test_indexed_file_that_fails_to_load(self, client_with_data, test_data_folder):
        (test_data_folder / "broken.csv").write_text("timestamp,speed\nyesterday,1.0\n")
        client_with_data.post("/folder/rescan")
        repo = repository.get_repository()
        broken_id = next(i for i in repo._index if repo.get_path(i).name == "broken.csv")

        response = client_with_data.get(f"/series/{broken_id}")

        assert response.status_code == 500
        assert "broken" not in client_with_data.get("/series").text


class TestQueryEndpoints:
    """Tests for range queries and sampling."""

    def test_points_full_range(self, client_with_data):
        series_id = first_series_id(client_with_data)

        response = client_with_data.get(f"/series/{series_id}/points")

        assert response.status_code == 200
        assert len(response.json()["points"]) == 3

    def test_points_in_range(self, client_with_data):
        series_id = first_series_id(client_with_data)

        response = client_with_data.get(
            f"/series/{series_id}/points",
            params={"start": "2024-01-15T10:00:00.500Z", "end": "2024-01-15T10:00:02Z"},
        )

        assert response.status_code == 200
        speeds = [p["speed"] for p in response.json()["points"]]
        assert speeds == [10.0, 12.0]

    def test_sample_interpolated(self, client_with_data):
        series_id = first_series_id(client_with_data)

        response = client_with_data.get(
            f"/series/{series_id}/sample",
            params={"t": "2024-01-15T10:00:00.500Z"},
        )

        assert response.status_code == 200
        point = response.json()["point"]
        assert point["speed"] == pytest.approx(9.0)
        assert point["altitude"] == pytest.approx(250.5)

    def test_sample_outside_series(self, client_with_data):
        series_id = first_series_id(client_with_data)

        response = client_with_data.get(
            f"/series/{series_id}/sample",
            params={"t": "2024-01-15T11:00:00Z"},
        )

        assert response.status_code == 200
        assert response.json()["point"] is None

    def test_sample_requires_time(self, client_with_data):
        series_id = first_series_id(client_with_data)

        assert client_with_data.get(f"/series/{series_id}/sample").status_code == 422

    def test_sample_not_found(self, client_with_data):
        response = client_with_data.get("/series/nonexistent_id/sample", params={"t": "2024-01-15T10:00:00Z"})

        assert response.status_code == 404


class TestFramesEndpoint:
    """Tests for per-frame sampling."""

    def test_frames(self, client_with_data):
        series_id = first_series_id(client_with_data)

        response = client_with_data.get(f"/series/{series_id}/frames", params={"fps": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["total_frames"] == 4
        assert len(data["frames"]) == 4
        assert data["frames"][1]["point"]["speed"] == pytest.approx(9.0)
        assert all(f["interpolated"] for f in data["frames"])

    def test_frames_with_start_before_series(self, client_with_data):
        series_id = first_series_id(client_with_data)

        response = client_with_data.get(
            f"/series/{series_id}/frames",
            params={"fps": 1, "duration": 2, "start": "2024-01-15T09:59:58Z"},
        )

        assert response.status_code == 200
        frames = response.json()["frames"]
        assert [f["interpolated"] for f in frames] == [False, False]
        assert frames[0]["point"]["speed"] == 8.0

    def test_zero_length_series_with_start(self, client_with_data, test_data_folder):
        (test_data_folder / "single.csv").write_text("timestamp,speed\n2024-01-15T10:00:00Z,4.0\n")
        client_with_data.post("/folder/rescan")
        series_id = first_series_id(client_with_data, "single")

        response = client_with_data.get(
            f"/series/{series_id}/frames",
            params={"fps": 30, "start": "2024-01-15T10:00:00Z"},
        )

        assert response.status_code == 200
        assert response.json()["total_frames"] == 0
        assert response.json()["frames"] == []

    def test_too_many_frames(self, client_with_data):
        series_id = first_series_id(client_with_data)

        response = client_with_data.get(
            f"/series/{series_id}/frames",
            params={"fps": 60, "duration": 600},
        )

        assert response.status_code == 400

    def test_invalid_fps(self, client_with_data):
        series_id = first_series_id(client_with_data)

        assert client_with_data.get(f"/series/{series_id}/frames", params={"fps": 0}).status_code == 422


class TestParseEndpoint:
    """Tests for raw-text parsing."""

    def test_parse_csv(self, client):
        response = client.post("/parse", json={"format": "csv", "content": SAMPLE_CSV})

        assert response.status_code == 200
        data = response.json()
        assert len(data["points"]) == 3
        assert data["metadata"]["format"] == "csv"
        assert data["metadata"]["duration"] == 2.0

    def test_parse_gpx_alias(self, client):
        response = client.post("/parse", json={"format": "structured-track", "content": SAMPLE_GPX})

        assert response.status_code == 200
        assert response.json()["metadata"]["source"] == "TestDevice"

    def test_parse_error(self, client):
        response = client.post("/parse", json={"format": "csv", "content": "timestamp\nnot-a-time\n"})

        assert response.status_code == 400

    def test_unsupported_format(self, client):
        response = client.post("/parse", json={"format": "tcx", "content": "<tcx/>"})

        assert response.status_code == 400
        assert "tcx" in response.json()["detail"]
