"""Tiny HTML helpers shared by the server gallery page and the client's offline gallery."""

from datetime import datetime
from html import escape
from typing import Iterable, Optional, Tuple

BASE_CSS = """
<style>
  body{font-family:system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif;margin:24px;max-width:1100px}
  .card{border:1px solid #ddd;border-radius:12px;padding:16px;margin:16px 0}
  .muted{color:#666}
  .photo-item{display:inline-block;margin:10px;text-align:center}
  .photo-item img{max-width:250px;height:250px;object-fit:cover;border-radius:10px;box-shadow:0 4px 8px rgba(0,0,0,.2)}
  .photo-item .ts{font-size:12px;color:#666;margin-top:5px}
  .mirror{transform:scaleX(-1)}
</style>
"""


def html_page(title: str, body: str, reload_sec: Optional[int] = None) -> str:
    """Wrap a body fragment into a full page; optional self-reload every `reload_sec` seconds."""
    script = ""
    if reload_sec:
        script = f"<script>setTimeout(()=>location.reload(),{int(reload_sec) * 1000})</script>"
    return (
        f"<!doctype html><meta charset='utf-8'><title>{escape(title)}</title>"
        f"{BASE_CSS}{body}{script}"
    )


def thumbnails(items: Iterable[Tuple[str, datetime]], mirror: bool = False) -> str:
    """One .photo-item per (url, taken_at), capture time shown as HH:MM."""
    cls = " class='mirror'" if mirror else ""
    parts = []
    for url, taken_at in items:
        parts.append(
            "<div class='photo-item'>"
            f"<img src='{escape(url, quote=True)}' loading='lazy'{cls}>"
            f"<div class='ts'>{taken_at.strftime('%H:%M')}</div>"
            "</div>"
        )
    return "".join(parts) or "<em class='muted'>no photos yet</em>"
