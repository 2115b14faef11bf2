"""
app.py

Photo drop server.

What this file provides:
- HTTP photo upload endpoint (multipart JPEG + latitude/longitude)
- Listing of every stored photo (/photos)
- Static retrieval of stored files under /uploads/<name>
- Human-facing gallery page (/) that reloads itself
- Optional MQTT "new photo" announcements

This is designed for a LAN prototype: no auth, CORS open by default.
"""

import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from photodrop.html import html_page, thumbnails
from photodrop.names import URL_PREFIX, taken_at
from photodrop.server.config import Settings
from photodrop.server.limits import UploadSizeLimit
from photodrop.server.notify import build_notifier
from photodrop.server.storage import EmptyPhoto, PhotoStore, PhotoTooLarge

log = logging.getLogger(__name__)

NO_PHOTO = "No photo file provided."
# Multipart framing + the two coordinate fields on top of the photo itself
MULTIPART_SLACK = 64 * 1024


def parse_coordinate(value: Optional[str], name: str, bound: float) -> float:
    """Form value -> float; missing, blank or unusable is 0 (unknown location)."""
    if value is None or not value.strip():
        return 0.0
    try:
        v = float(value)
    except ValueError:
        log.warning("[upload] ignoring non-numeric %s %r", name, value)
        return 0.0
    if not math.isfinite(v) or abs(v) > bound:
        log.warning("[upload] ignoring out-of-range %s %r", name, value)
        return 0.0
    return v


def failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    store = PhotoStore(settings.storage_root, settings.max_upload_bytes)
    store.ensure()
    notifier = build_notifier(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if notifier:
            notifier.start()
        log.info("[server] storing photos in %s", store.root.resolve())
        yield
        if notifier:
            notifier.stop()

    app = FastAPI(title="Photo Drop", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    # added first so it sits inside CORS and its 413 gets the CORS headers
    app.add_middleware(
        UploadSizeLimit,
        max_body=settings.max_upload_bytes + MULTIPART_SLACK,
        error=str(PhotoTooLarge(settings.max_upload_bytes)),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,  # LAN only; for prod, restrict this
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    @app.exception_handler(RequestValidationError)
    async def bad_form(request: Request, exc: RequestValidationError):
        # e.g. "photo" sent as a text field instead of a file part
        return failure(400, NO_PHOTO if request.url.path == "/upload" else "Invalid request.")

    # =========================
    # Upload / listing
    # =========================

    @app.post("/upload")
    async def upload_photo(
        photo: Optional[UploadFile] = File(None),
        latitude: Optional[str] = Form(None),
        longitude: Optional[str] = Form(None),
    ):
        """
        Client sends a multipart/form-data POST with the JPEG under "photo"
        plus optional latitude/longitude (default 0).
        The file is stored under a generated name; the client filename only
        contributes its (sanitized) extension.
        """
        if photo is None:
            return failure(400, NO_PHOTO)
        lat = parse_coordinate(latitude, "latitude", 90)
        lon = parse_coordinate(longitude, "longitude", 180)

        try:
            stored = await run_in_threadpool(store.save, photo.file, photo.filename)
        except PhotoTooLarge as e:
            return failure(413, str(e))
        except EmptyPhoto:
            return failure(400, NO_PHOTO)
        except Exception as e:
            log.exception("[upload] storing %r failed", photo.filename)
            return failure(500, str(e))
        finally:
            await photo.close()

        log.info("[upload] received %s (%d bytes) lat=%s lon=%s", stored.name, stored.size, lat, lon)
        if notifier:
            try:
                notifier.photo_stored(stored, lat, lon)
            except Exception as e:
                log.warning("[mqtt] notify failed for %s: %s", stored.name, e)

        return {
            "success": True,
            "message": "Photo uploaded successfully.",
            "photoUrl": stored.url,
            "location": {"latitude": lat, "longitude": lon},
        }

    @app.get("/photos")
    async def list_photos():
        """All stored photo URLs in directory order; [] when the store is unreadable."""
        return await run_in_threadpool(store.list_urls)

    # Serve uploaded images (LAN demo; no access control)
    app.mount(URL_PREFIX, StaticFiles(directory=str(store.root), check_dir=False), name="uploads")

    # =========================
    # Super-simple Web UI
    # =========================

    @app.get("/", response_class=HTMLResponse)
    async def gallery_page():
        """Every stored photo, auto-refreshing so uploads from other sessions show up."""
        urls = await run_in_threadpool(store.list_urls)
        now = datetime.now()
        items = [(u, taken_at(u) or now) for u in urls]
        body = f"""
        <h1>Photo Drop</h1>
        <div class="card">
          <p class="muted">{len(urls)} photo(s) stored. This page reloads every {settings.gallery_refresh_sec} s.</p>
          <div id="gallery">{thumbnails(items)}</div>
        </div>
        """
        return html_page("Photo Drop", body, reload_sec=settings.gallery_refresh_sec)

    @app.get("/healthz")
    def healthz():
        """Simple health endpoint for monitoring."""
        return {"ok": True}

    return app


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
