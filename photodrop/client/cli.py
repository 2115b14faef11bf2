"""
Photo Drop - client CLI

Take a photo with the local camera, upload it with its location, and keep a
small gallery of what is on the server.

  photodrop capture            one photo, print its URL
  photodrop list               print every stored photo URL
  photodrop gallery -o g.html  write the server's photos into an HTML page
  photodrop [shell]            interactive control panel (default)
"""

import argparse
import asyncio
import dataclasses
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from photodrop.client.capture import CaptureController, CaptureOptions
from photodrop.client.errors import PhotoDropError
from photodrop.client.gallery import Gallery, GalleryRefresher, backfill
from photodrop.client.geolocation import Geolocation, IPGeolocation, StaticGeolocation
from photodrop.client.media import OpenCVMediaDevices
from photodrop.client.upload import PhotoDropClient

DEFAULT_SERVER = os.getenv("PHOTODROP_SERVER", "http://localhost:8000")


def build_geolocation(args) -> Optional[Geolocation]:
    if args.lat is not None and args.lon is not None:
        return StaticGeolocation(args.lat, args.lon)
    if args.geo_url:
        return IPGeolocation(args.geo_url)
    return None


def build_controller(args) -> CaptureController:
    options = CaptureOptions.rear() if args.rear else CaptureOptions.front()
    overrides = {"jpeg_quality": args.quality}
    if args.mirror is not None:
        overrides["mirror"] = args.mirror
    options = dataclasses.replace(options, **overrides)

    devices = OpenCVMediaDevices(facing_indices={"user": args.front_index, "environment": args.rear_index})
    return CaptureController(
        devices,
        geolocation=build_geolocation(args),
        options=options,
        status=lambda text: print(f"  [STATUS] {text}"),
    )


# =========================
# Commands
# =========================

async def cmd_capture(args) -> int:
    client = PhotoDropClient(args.server)
    controller = build_controller(args)
    print("\n[CAPTURE] Taking photo...")
    try:
        entry = await controller.capture_and_submit(client)
    except PhotoDropError as e:
        print(f"[ERROR] {e.message}")
        return 1
    print(f"[OK] Photo uploaded: {client.absolute(entry.url)}")
    return 0


async def cmd_list(args) -> int:
    client = PhotoDropClient(args.server)
    try:
        urls = await client.list_photos()
    except PhotoDropError as e:
        print(f"[ERROR] {e.message}")
        return 1
    for url in urls:
        print(client.absolute(url))
    return 0


async def cmd_gallery(args) -> int:
    client = PhotoDropClient(args.server)
    gallery = Gallery()
    count = await backfill(gallery, client)
    out = gallery.write_html(args.output, absolute=client.absolute, mirror=args.mirror_display)
    print(f"[OK] {count} photo(s) written to {out.resolve()}")
    return 0


def show_menu():
    print("\n" + "=" * 60)
    print("PHOTO DROP - Control Panel")
    print("=" * 60)
    print("  [X] - Take photo and upload")
    print("  [G] - Show gallery")
    print("  [H] - Write gallery HTML")
    print("  [R] - Refresh gallery from server")
    print("  [Q] - Quit")
    print("=" * 60)


def show_gallery(gallery: Gallery, client: PhotoDropClient):
    print(f"\n[GALLERY] {len(gallery)} photo(s)")
    for e in gallery:
        print(f"  {e.taken_at.strftime('%H:%M')}  {client.absolute(e.url)}")


async def cmd_shell(args) -> int:
    client = PhotoDropClient(args.server)
    controller = build_controller(args)
    gallery = Gallery()

    print("\n" + "=" * 60)
    print("PHOTO DROP - Starting")
    print("=" * 60)
    print(f"[SERVER] {client.base_url}")
    added = await backfill(gallery, client)
    print(f"[GALLERY] {added} existing photo(s) loaded")

    refresher = GalleryRefresher(
        gallery, client, interval=args.refresh,
        on_update=lambda g: print(f"\n[GALLERY] new photos from other sessions ({len(g)} total)"),
    )
    show_menu()
    async with refresher:
        while True:
            try:
                cmd = (await asyncio.to_thread(input, "\nCommand: ")).strip().upper()
            except (EOFError, KeyboardInterrupt):
                print("\n[SHUTDOWN] Interrupted - shutting down...")
                break

            if cmd == "X":
                if not controller.trigger_enabled:
                    print("[WARN] Capture already running")
                    continue
                try:
                    entry = await controller.capture_and_submit(client, gallery)
                    print(f"[OK] Photo uploaded: {client.absolute(entry.url)}")
                except PhotoDropError as e:
                    print(f"[ERROR] {e.message}")
            elif cmd == "G":
                show_gallery(gallery, client)
            elif cmd == "H":
                out = gallery.write_html(args.output, absolute=client.absolute, mirror=args.mirror_display)
                print(f"[OK] Gallery written to {out.resolve()}")
            elif cmd == "R":
                added = await refresher.refresh()
                print(f"[GALLERY] {added} new photo(s)")
            elif cmd == "Q":
                print("\n[SHUTDOWN] Shutting down...")
                break
            elif cmd == "":
                continue
            else:
                print(f"[ERROR] Unknown command: {cmd}")
                show_menu()

    print("Goodbye!\n")
    return 0


COMMANDS = {
    "capture": cmd_capture,
    "list": cmd_list,
    "gallery": cmd_gallery,
    "shell": cmd_shell,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="photodrop", description="Camera capture -> HTTP upload -> gallery")
    ap.add_argument("command", nargs="?", default="shell", choices=sorted(COMMANDS))
    ap.add_argument("--server", default=DEFAULT_SERVER, help="Server base URL (env PHOTODROP_SERVER)")
    ap.add_argument("--rear", action="store_true", help="Use the environment-facing camera (no mirroring)")
    ap.add_argument("--mirror", dest="mirror", action="store_true", default=None,
                    help="Force horizontal mirroring of captured frames")
    ap.add_argument("--no-mirror", dest="mirror", action="store_false")
    ap.add_argument("--mirror-display", action="store_true", help="Mirror thumbnails in the HTML gallery")
    ap.add_argument("--quality", type=int, default=90, help="JPEG quality (0-100)")
    ap.add_argument("--front-index", type=int, default=0, help="Camera index for the user-facing camera")
    ap.add_argument("--rear-index", type=int, default=1, help="Camera index for the environment-facing camera")
    ap.add_argument("--lat", type=float, help="Fixed latitude for every photo")
    ap.add_argument("--lon", type=float, help="Fixed longitude for every photo")
    ap.add_argument("--geo-url", help="IP geolocation service, e.g. https://ipinfo.io/json")
    ap.add_argument("--refresh", type=float, default=30.0, help="Gallery refresh interval in seconds (shell)")
    ap.add_argument("-o", "--output", type=Path, default=Path("gallery.html"), help="HTML gallery file")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(COMMANDS[args.command](args))


if __name__ == "__main__":
    sys.exit(main())
