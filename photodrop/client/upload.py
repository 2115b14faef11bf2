"""HTTP side of the client: POST /upload and GET /photos."""

import asyncio
import logging
from typing import List, Optional

import requests

from photodrop.client.errors import ApplicationFailure, NetworkFailure, ServerInternal
from photodrop.client.models import CapturedPhoto

log = logging.getLogger(__name__)

PHOTO_FIELD = "photo"


class PhotoDropClient:
    def __init__(self, base_url: str, timeout: float = 60.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def absolute(self, url: str) -> str:
        """Server-relative photo URL -> absolute URL (for display outside the browser)."""
        return url if "://" in url else f"{self.base_url}{url}"

    async def submit(self, photo: CapturedPhoto) -> str:
        """Upload one photo; returns its server-relative photoUrl."""
        return await asyncio.to_thread(self._submit, photo)

    async def list_photos(self) -> List[str]:
        return await asyncio.to_thread(self._list_photos)

    def _submit(self, photo: CapturedPhoto) -> str:
        lat, lon = photo.coordinates
        files = {PHOTO_FIELD: (photo.filename, photo.data, photo.content_type)}
        data = {"latitude": str(lat), "longitude": str(lon)}
        try:
            r = self.session.post(f"{self.base_url}/upload", files=files, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("[upload] transport error: %s", e)
            raise NetworkFailure() from e

        try:
            result = r.json()
        except ValueError:
            result = {}
        if not isinstance(result, dict):
            result = {}

        error = result.get("error")
        if r.status_code >= 500:
            raise ServerInternal(error)
        if not result.get("success") or not result.get("photoUrl"):
            # HTTP 200 with success:false is still a failed upload
            raise ApplicationFailure(error)
        log.info("[upload] stored as %s", result["photoUrl"])
        return result["photoUrl"]

    def _list_photos(self) -> List[str]:
        try:
            r = self.session.get(f"{self.base_url}/photos", timeout=self.timeout)
            r.raise_for_status()
            urls = r.json()
        except requests.RequestException as e:
            raise NetworkFailure() from e
        except ValueError as e:
            raise ApplicationFailure("Invalid photo listing") from e
        if not isinstance(urls, list):
            raise ApplicationFailure("Invalid photo listing")
        return [u for u in urls if isinstance(u, str)]
