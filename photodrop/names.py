"""
Stored photo names, shared by server and client.

A stored name is `<epoch-ms>-<random>.<ext>`; the URL is `/uploads/<name>`.
"""

import os
import random
import re
import time
from datetime import datetime
from typing import Optional

URL_PREFIX = "/uploads"
DEFAULT_EXT = "jpg"
MAX_EXT_LEN = 8

_UNSAFE_EXT = re.compile(r"[^a-z0-9]")
_NAME_TS = re.compile(r"^(\d{10,16})-\d+\.")


def now_ms() -> int:
    """Server time in epoch milliseconds (int)."""
    return int(time.time() * 1000)


def safe_extension(filename: Optional[str]) -> str:
    """
    Extension of a client-supplied filename, reduced to [a-z0-9].
    Anything that would not survive as part of a single path segment is dropped,
    so "../../x.j/pg" and "evil.ph p" cannot smuggle separators into the name.
    """
    ext = os.path.splitext(os.path.basename(filename or ""))[1].lower()
    ext = _UNSAFE_EXT.sub("", ext)[:MAX_EXT_LEN]
    return ext or DEFAULT_EXT


def taken_at(name_or_url: str) -> Optional[datetime]:
    """Capture time encoded in a stored name (or its URL); None for foreign names."""
    m = _NAME_TS.match(os.path.basename(name_or_url))
    if not m:
        return None
    return datetime.fromtimestamp(int(m.group(1)) / 1000)


def generate_name(filename: Optional[str]) -> str:
    return f"{now_ms()}-{random.randint(0, 999_999_999)}.{safe_extension(filename)}"


def photo_url(name: str) -> str:
    return f"{URL_PREFIX}/{name}"
