import io
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from card_service.config import CARD_FONT_FILE, COVER_FONT_FILE
from card_service.errors import AssetFetchError
from card_service.main import EXAMPLE_REQUESTS, create_app


@pytest.fixture
def client(fonts_dir):
    return TestClient(create_app(fonts_dir=fonts_dir))


@pytest.fixture
def bare_client(tmp_path):
    empty = tmp_path / "no-fonts"
    empty.mkdir()
    return TestClient(create_app(fonts_dir=empty))


def _png_size(content: bytes):
    with Image.open(io.BytesIO(content)) as im:
        assert im.format == "PNG"
        return im.size


@patch("card_service.main.fetch_and_embed")
def test_card_with_empty_body_uses_defaults(mock_fetch, client, poster, cairo):
    mock_fetch.return_value = poster
    response = client.post("/api/generate-card")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.headers["content-disposition"] == 'attachment; filename="movie-title-movie-card.png"'
    assert _png_size(response.content) == (1080, 1350)
    mock_fetch.assert_called_once()
    assert mock_fetch.call_args.args[0].startswith("https://images.unsplash.com/")


@patch("card_service.main.fetch_and_embed")
def test_card_respects_requested_size(mock_fetch, client, poster, cairo):
    mock_fetch.return_value = poster
    response = client.post(
        "/api/generate-card",
        json={"title": "The Dark Knight", "image": "https://example.com/p.jpg", "width": 540, "height": 675},
    )
    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="the-dark-knight-movie-card.png"'
    assert _png_size(response.content) == (540, 675)
    mock_fetch.assert_called_once_with("https://example.com/p.jpg")


def test_cover_with_background_color(client, cairo):
    response = client.post("/api/generate-cover", json={"backgroundColor": "#ffffff", "width": 270, "height": 337})
    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="cover-slide.png"'
    with Image.open(io.BytesIO(response.content)) as im:
        assert im.size == (270, 337)
        assert im.getpixel((1, 1)) == (255, 255, 255)


@patch("card_service.main.fetch_and_embed")
def test_fetch_failure_is_a_client_error(mock_fetch, client):
    mock_fetch.side_effect = AssetFetchError("Failed to fetch image from URL", details="404 Client Error")
    response = client.post("/api/generate-card", json={"image": "https://example.com/missing.jpg"})
    assert response.status_code == 400
    assert response.json() == {"error": "Failed to fetch image from URL", "details": "404 Client Error"}


@patch("card_service.assets.requests.get")
def test_non_image_body_without_content_type_is_a_client_error(mock_get, client):
    resp = MagicMock()
    resp.content = b"<html><body>Not found</body></html>"
    resp.headers = {}
    mock_get.return_value = resp
    response = client.post("/api/generate-card", json={"image": "https://example.com/poster.jpg"})
    assert response.status_code == 400
    assert response.json()["error"] == "Failed to fetch image from URL"


@patch("card_service.main.fetch_and_embed")
def test_unexpected_failure_is_wrapped(mock_fetch, client):
    mock_fetch.side_effect = RuntimeError("boom")
    response = client.post("/api/generate-card", json={})
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to generate movie card", "details": "boom"}


@patch("card_service.main.fetch_and_embed")
def test_missing_fonts_fail_every_request(mock_fetch, bare_client):
    for _ in range(2):
        response = bare_client.post("/api/generate-card", json={"title": "Dune"})
        assert response.status_code == 500
        assert response.json()["error"] == "Font not configured. Add Roboto-Bold.ttf to the fonts directory"
    response = bare_client.post("/api/generate-cover")
    assert response.status_code == 500
    assert "BebasNeue-Regular.ttf" in response.json()["error"]
    mock_fetch.assert_not_called()


@pytest.mark.parametrize(
    "path, body",
    [
        ("/api/generate-card", {"width": 0}),
        ("/api/generate-card", {"rating": "lots"}),
        ("/api/generate-card", {"height": 99999}),
        ("/api/generate-cover", {"backgroundColor": "sky"}),
    ],
)
def test_invalid_bodies_are_rejected(client, path, body):
    response = client.post(path, json=body)
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "Invalid request body"
    assert data["details"]


def test_malformed_json_is_rejected(client):
    response = client.post(
        "/api/generate-card",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"


def test_health_reports_fonts(client, bare_client):
    assert client.get("/api/health").json() == {
        "status": "ok",
        "fontLoaded": True,
        "fonts": {"card": True, "cover": True},
        "fontFiles": {"loaded": [CARD_FONT_FILE, COVER_FONT_FILE], "missing": []},
    }
    assert bare_client.get("/api/health").json() == {
        "status": "ok",
        "fontLoaded": False,
        "fonts": {"card": False, "cover": False},
        "fontFiles": {"loaded": [], "missing": [CARD_FONT_FILE, COVER_FONT_FILE]},
    }


def test_example_endpoint(client):
    response = client.get("/api/example")
    assert response.status_code == 200
    assert response.json() == EXAMPLE_REQUESTS
    assert set(response.json()) == {"card", "cover"}
