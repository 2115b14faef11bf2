import shutil

import pytest
from fastapi.testclient import TestClient

from photodrop.server.app import create_app, parse_coordinate
from photodrop.server.config import Settings

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 64 + b"\xff\xd9"


@pytest.fixture
def settings(tmp_path):
    return Settings(storage_root=tmp_path / "uploads", max_upload_bytes=4096)


@pytest.fixture
def client(settings):
    return TestClient(create_app(settings))


def upload(client, data=JPEG, filename="selfie-1.jpg", **fields):
    return client.post("/upload", files={"photo": (filename, data, "image/jpeg")}, data=fields)


def test_upload_without_photo_is_rejected(client):
    r = client.post("/upload", data={"latitude": "1", "longitude": "2"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "No photo file provided."}


def test_upload_with_text_photo_field_is_rejected(client):
    r = client.post("/upload", data={"photo": "not a file"})
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_upload_stores_file_and_returns_url(client, settings):
    r = upload(client, latitude="52.52", longitude="13.405")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["photoUrl"].startswith("/uploads/")
    assert body["location"] == {"latitude": 52.52, "longitude": 13.405}
    assert body["message"]

    name = body["photoUrl"].rsplit("/", 1)[1]
    assert (settings.storage_root / name).read_bytes() == JPEG


def test_upload_without_location_defaults_to_zero(client):
    body = upload(client).json()
    assert body["location"] == {"latitude": 0.0, "longitude": 0.0}


def test_unsafe_client_filename_is_neutralized(client, settings):
    body = upload(client, filename="../../../evil.jpg").json()
    name = body["photoUrl"][len("/uploads/"):]
    assert "/" not in name and ".." not in name
    assert list(settings.storage_root.iterdir()) == [settings.storage_root / name]


def test_unusable_coordinate_is_stored_as_unknown(client, settings):
    r = upload(client, latitude="north", longitude="500")
    assert r.status_code == 200
    assert r.json()["location"] == {"latitude": 0.0, "longitude": 0.0}
    assert len(list(settings.storage_root.iterdir())) == 1


def test_oversized_upload_fails_cleanly(client, settings):
    # over the limit but under the Content-Length pre-check: caught while streaming
    r = upload(client, data=b"x" * 5000)
    assert r.status_code == 413
    assert r.json()["success"] is False
    assert list(settings.storage_root.iterdir()) == []


def test_oversized_upload_refused_from_content_length(client, settings):
    r = upload(client, data=b"x" * 200_000)
    assert r.status_code == 413
    assert r.json()["success"] is False
    assert list(settings.storage_root.iterdir()) == []


def test_empty_photo_is_rejected(client, settings):
    r = upload(client, data=b"")
    assert r.status_code == 400
    assert list(settings.storage_root.iterdir()) == []


def test_photos_empty_store(client):
    r = client.get("/photos")
    assert r.status_code == 200
    assert r.json() == []


def test_photos_missing_directory(client, settings):
    shutil.rmtree(settings.storage_root)
    r = client.get("/photos")
    assert r.status_code == 200
    assert r.json() == []


def test_uploaded_photo_is_listed_and_served(client):
    url = upload(client).json()["photoUrl"]
    assert url in client.get("/photos").json()

    r = client.get(url)
    assert r.status_code == 200
    assert r.content == JPEG


def test_every_upload_gets_its_own_name(client):
    urls = {upload(client).json()["photoUrl"] for _ in range(5)}
    assert len(urls) == 5
    assert set(client.get("/photos").json()) == urls


def test_gallery_page_shows_photos(client, settings):
    url = upload(client).json()["photoUrl"]
    r = client.get("/")
    assert r.status_code == 200
    assert "text/html" in r.headers["content-type"]
    assert url in r.text
    assert f"{settings.gallery_refresh_sec * 1000}" in r.text


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}


def test_internal_error_is_reported_as_500(client, monkeypatch):
    def boom(*a, **kw):
        raise OSError("disk full")

    monkeypatch.setattr(client.app.state.store, "save", boom)
    r = upload(client)
    assert r.status_code == 500
    assert r.json() == {"success": False, "error": "disk full"}


@pytest.mark.parametrize("value,expected", [(None, 0.0), ("", 0.0), (" 12.5 ", 12.5), ("-90", -90.0)])
def test_parse_coordinate(value, expected):
    assert parse_coordinate(value, "latitude", 90) == expected


@pytest.mark.parametrize("value", ["abc", "91", "nan", "inf"])
def test_parse_coordinate_falls_back_to_zero(value):
    assert parse_coordinate(value, "latitude", 90) == 0.0


def chunked_multipart(size, boundary="photodrop-test"):
    """Multipart body as a generator, so the client sends it without Content-Length."""
    yield (
        f"--{boundary}\r\n"
        'Content-Disposition: form-data; name="photo"; filename="big.jpg"\r\n'
        "Content-Type: image/jpeg\r\n\r\n"
    ).encode()
    for _ in range(size // 1024):
        yield b"x" * 1024
    yield f"\r\n--{boundary}--\r\n".encode()


def test_chunked_oversized_upload_is_cut_off(client, settings):
    r = client.post(
        "/upload",
        content=chunked_multipart(400_000),
        headers={"content-type": "multipart/form-data; boundary=photodrop-test"},
    )
    assert r.status_code == 413
    assert r.json() == {"success": False, "error": "Photo exceeds the 4096 byte upload limit."}
    assert list(settings.storage_root.iterdir()) == []


def test_chunked_small_upload_still_works(client):
    r = client.post(
        "/upload",
        content=chunked_multipart(2048),
        headers={"content-type": "multipart/form-data; boundary=photodrop-test"},
    )
    assert r.status_code == 200
    assert r.json()["success"] is True


@pytest.mark.parametrize("chunked", [False, True])
def test_size_refusal_carries_cors_headers(tmp_path, chunked):
    settings = Settings(storage_root=tmp_path, max_upload_bytes=1024, cors_origins=["http://phone.lan"])
    client = TestClient(create_app(settings))
    origin = {"origin": "http://phone.lan"}
    if chunked:
        r = client.post("/upload", content=chunked_multipart(200_000), headers={
            **origin, "content-type": "multipart/form-data; boundary=photodrop-test"})
    else:
        r = client.post("/upload", files={"photo": ("a.jpg", b"x" * 200_000, "image/jpeg")}, headers=origin)
    assert r.status_code == 413
    assert r.headers["access-control-allow-origin"] == "http://phone.lan"
    assert r.json()["success"] is False
