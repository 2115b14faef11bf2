"""
Gallery of uploaded photos.

Two ways in:
- add_capture(): our own upload, newest first, capped (oldest evicted)
- extend_from_listing(): bulk /photos backfill, appended in server order, no cap

GalleryRefresher re-runs the bulk listing on a fixed interval so uploads from
other sessions show up. Stop it (or leave its `async with`) on teardown.
"""

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from photodrop.client.errors import UploadError
from photodrop.client.upload import PhotoDropClient
from photodrop.html import html_page, thumbnails
from photodrop.names import taken_at as name_timestamp

log = logging.getLogger(__name__)

MAX_ENTRIES = 10
REFRESH_SEC = 30.0


@dataclass(frozen=True)
class GalleryEntry:
    url: str
    taken_at: datetime

    @classmethod
    def from_url(cls, url: str, taken_at: Optional[datetime] = None) -> "GalleryEntry":
        return cls(url, taken_at or name_timestamp(url) or datetime.now())


class Gallery:
    def __init__(self, max_entries: int = MAX_ENTRIES):
        self.max_entries = max_entries
        self._entries: List[GalleryEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[GalleryEntry]:
        return iter(list(self._entries))

    def __contains__(self, url: str) -> bool:
        return any(e.url == url for e in self._entries)

    @property
    def entries(self) -> Tuple[GalleryEntry, ...]:
        return tuple(self._entries)

    def add_capture(self, url: str, taken_at: Optional[datetime] = None) -> GalleryEntry:
        entry = GalleryEntry.from_url(url, taken_at)
        self._entries.insert(0, entry)
        if len(self._entries) > self.max_entries:
            self._entries.pop()
        return entry

    def extend_from_listing(self, urls: Iterable[str]) -> int:
        """Append listed photos not shown yet; returns how many were added."""
        seen = {e.url for e in self._entries}
        added = 0
        for url in urls:
            if url in seen:
                continue
            seen.add(url)
            self._entries.append(GalleryEntry.from_url(url))
            added += 1
        return added

    def render_html(self, absolute: Callable[[str], str] = str, mirror: bool = False) -> str:
        return thumbnails(((absolute(e.url), e.taken_at) for e in self._entries), mirror=mirror)

    def write_html(self, path: Path, absolute: Callable[[str], str] = str, mirror: bool = False) -> Path:
        body = f"<h1>Photo Drop</h1><div class='card'><div id='gallery'>{self.render_html(absolute, mirror)}</div></div>"
        path = Path(path)
        path.write_text(html_page("Photo Drop", body), encoding="utf-8")
        return path


async def backfill(gallery: Gallery, client: PhotoDropClient) -> int:
    """Bulk listing -> gallery. A failing server leaves the gallery as it was."""
    try:
        urls = await client.list_photos()
    except UploadError as e:
        log.info("[gallery] no existing photos or server error: %s", e)
        return 0
    return gallery.extend_from_listing(urls)


class GalleryRefresher:
    """Fixed-interval /photos polling. No backoff; one task per refresher."""

    def __init__(self, gallery: Gallery, client: PhotoDropClient, interval: float = REFRESH_SEC,
                 on_update: Optional[Callable[[Gallery], None]] = None):
        self.gallery = gallery
        self.client = client
        self.interval = interval
        self.on_update = on_update
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def refresh(self) -> int:
        added = await backfill(self.gallery, self.client)
        if added and self.on_update:
            self.on_update(self.gallery)
        return added

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.refresh()

    async def __aenter__(self) -> "GalleryRefresher":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()
