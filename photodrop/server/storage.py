"""
Content store: uploaded photos on local disk.

Layout is flat:
  <root>/<epoch-ms>-<random>.<ext>     finished photos
  <root>/.<name>.part                  in-flight writes (hidden, never listed)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional

from photodrop.names import generate_name, photo_url

log = logging.getLogger(__name__)

CHUNK = 64 * 1024


class PhotoTooLarge(Exception):
    def __init__(self, limit: int):
        size = f"{limit // (1024 * 1024)} MiB" if limit >= 1024 * 1024 else f"{limit} byte"
        super().__init__(f"Photo exceeds the {size} upload limit.")
        self.limit = limit


class EmptyPhoto(ValueError):
    pass


@dataclass(frozen=True)
class StoredPhoto:
    name: str
    path: Path
    size: int

    @property
    def url(self) -> str:
        return photo_url(self.name)


class PhotoStore:
    def __init__(self, root: Path, max_bytes: int):
        self.root = Path(root)
        self.max_bytes = max_bytes

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, src: BinaryIO, filename: Optional[str]) -> StoredPhoto:
        """
        Stream `src` into the store under a fresh unique name.
        Raises PhotoTooLarge past max_bytes and EmptyPhoto for zero bytes;
        either way nothing is left behind and nothing was ever listed.
        """
        self.ensure()
        name = generate_name(filename)
        while (self.root / name).exists():
            name = generate_name(filename)

        tmp = self.root / f".{name}.part"
        dest = self.root / name
        size = 0
        try:
            with tmp.open("wb") as out:
                for chunk in iter(lambda: src.read(CHUNK), b""):
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise PhotoTooLarge(self.max_bytes)
                    out.write(chunk)
            if size == 0:
                raise EmptyPhoto("photo is empty")
            os.replace(tmp, dest)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        return StoredPhoto(name=name, path=dest, size=size)

    def list_names(self) -> List[str]:
        """
        Names of stored photos in directory enumeration order.
        Missing or unreadable directory -> [] (listing must never fail the caller).
        """
        try:
            with os.scandir(self.root) as it:
                return [e.name for e in it if not e.name.startswith(".") and e.is_file()]
        except OSError as e:
            log.warning("[storage] cannot list %s: %s", self.root, e)
            return []

    def list_urls(self) -> List[str]:
        return [photo_url(n) for n in self.list_names()]
