import ast
import asyncio
from datetime import datetime
from pathlib import Path

import photodrop.client
from fakes import FakeResponse, FakeSession
from photodrop.client.gallery import Gallery, GalleryRefresher, backfill
from photodrop.client.upload import PhotoDropClient


def url(i):
    return f"/uploads/17000000{i:05d}-{i}.jpg"


def test_capture_path_is_capped_newest_first():
    g = Gallery()
    for i in range(10):
        g.add_capture(url(i))
    assert len(g) == 10
    previously_last = g.entries[-1]

    newest = g.add_capture(url(10))

    assert len(g) == 10
    assert g.entries[0] == newest
    assert previously_last not in g.entries
    assert [e.url for e in g] == [url(i) for i in range(10, 0, -1)]


def test_listing_path_is_unbounded_and_in_order():
    g = Gallery()
    urls = [url(i) for i in range(25)]
    assert g.extend_from_listing(urls) == 25
    assert [e.url for e in g] == urls


def test_listing_does_not_duplicate_entries():
    g = Gallery()
    g.add_capture(url(1))
    assert g.extend_from_listing([url(1), url(2)]) == 1
    assert g.extend_from_listing([url(1), url(2)]) == 0
    assert [e.url for e in g] == [url(1), url(2)]


def test_entry_time_from_stored_name():
    g = Gallery()
    e = g.add_capture("/uploads/1700000000000-5.jpg")
    assert e.taken_at == datetime.fromtimestamp(1700000000)
    other = g.add_capture("/uploads/holiday.jpg")
    assert isinstance(other.taken_at, datetime)


def test_render_html(tmp_path):
    g = Gallery()
    g.add_capture(url(1))
    html = g.render_html(absolute=lambda u: "http://server" + u, mirror=True)
    assert "http://server" + url(1) in html
    assert "class='mirror'" in html

    out = g.write_html(tmp_path / "g.html")
    assert url(1) in out.read_text(encoding="utf-8")


def test_empty_gallery_renders_placeholder():
    assert "no photos yet" in Gallery().render_html()


def test_backfill_swallows_server_errors():
    client = PhotoDropClient("http://server", session=FakeSession(get=FakeResponse(500, {"error": "x"})))
    g = Gallery()
    g.add_capture(url(1))
    assert asyncio.run(backfill(g, client)) == 0
    assert len(g) == 1


def test_refresher_polls_and_stops():
    listings = [[url(1)], [url(1), url(2)], [url(1), url(2), url(3)]]

    def next_listing():
        return FakeResponse(200, listings.pop(0) if listings else [url(1), url(2), url(3)])

    session = FakeSession(get=next_listing)
    client = PhotoDropClient("http://server", session=session)
    gallery = Gallery()
    updates = []

    async def scenario():
        refresher = GalleryRefresher(gallery, client, interval=0.01, on_update=lambda g: updates.append(len(g)))
        async with refresher:
            assert refresher.running
            for _ in range(200):
                if len(gallery) == 3:
                    break
                await asyncio.sleep(0.01)
        assert not refresher.running
        polls = len(session.gets)
        await asyncio.sleep(0.05)
        return polls

    polls = asyncio.run(scenario())
    assert [e.url for e in gallery] == [url(1), url(2), url(3)]
    assert updates[:3] == [1, 2, 3]
    # no more polling once stopped (one in-flight request may still land)
    assert len(session.gets) <= polls + 1


def test_stop_without_start_is_harmless():
    refresher = GalleryRefresher(Gallery(), PhotoDropClient("http://server", session=FakeSession()))
    asyncio.run(refresher.stop())
    assert not refresher.running


def test_client_package_does_not_import_the_server():
    for path in Path(photodrop.client.__file__).parent.glob("*.py"):
        tree = ast.parse(path.read_text())
        for node in ast.walk(tree):
            if isinstance(node, ast.ImportFrom) and node.module:
                assert not node.module.startswith("photodrop.server"), path.name
            elif isinstance(node, ast.Import):
                assert not any(a.name.startswith("photodrop.server") for a in node.names), path.name
