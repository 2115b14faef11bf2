"""
Capture controller: camera -> location -> one still frame -> JPEG -> upload.

Camera acquisition is a three step fallback, each step an independent attempt:
  1. exact device id (picked by label) + facing-mode hint
  2. facing-mode hint alone
  3. any camera
Only the last failure is reported, always as an AcquisitionExhausted.

Labels are vendor/locale dependent, so step 1 is best effort; steps 2 and 3
are what make acquisition dependable.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from photodrop.client.errors import (
    AcquisitionExhausted,
    CameraInUse,
    CameraNotFound,
    CameraPermissionDenied,
    CaptureBusy,
    FrameCaptureFailed,
)
from photodrop.client.gallery import Gallery, GalleryEntry
from photodrop.client.geolocation import DEFAULT_TIMEOUT_SEC, Geolocation, locate
from photodrop.client.media import (
    ANY_CAMERA,
    MediaDeviceInfo,
    MediaDevices,
    MediaError,
    MediaStream,
    NotAllowed,
    NotFound,
    NotReadable,
    VideoConstraints,
    encode_jpeg,
    fit_to,
    mirror,
)
from photodrop.client.models import CapturedPhoto
from photodrop.client.upload import PhotoDropClient

log = logging.getLogger(__name__)

USER = "user"
ENVIRONMENT = "environment"


@dataclass(frozen=True)
class CaptureOptions:
    facing_mode: str = USER
    mirror: bool = True                 # flip frames so they match a selfie preview
    stabilize_delay: float = 0.5        # first frames are often black
    geolocation_timeout: float = DEFAULT_TIMEOUT_SEC
    jpeg_quality: int = 90
    ideal_width: int = 1280
    ideal_height: int = 720

    @classmethod
    def front(cls, **kw) -> "CaptureOptions":
        return cls(facing_mode=USER, mirror=True, **kw)

    @classmethod
    def rear(cls, **kw) -> "CaptureOptions":
        return cls(facing_mode=ENVIRONMENT, mirror=False, **kw)


def matches_facing(label: str, facing_mode: str) -> bool:
    label = label.lower()
    if facing_mode == ENVIRONMENT:
        return any(t in label for t in ("back", "rear", "environment"))
    return (
        any(t in label for t in ("front", "selfie", "face"))
        or ("camera" in label and "back" not in label)
    )


def select_device(devices: Sequence[MediaDeviceInfo], facing_mode: str) -> Optional[MediaDeviceInfo]:
    """First video input (enumeration order) whose label hints at the wanted side."""
    for d in devices:
        if d.kind == "videoinput" and d.label and matches_facing(d.label, facing_mode):
            return d
    return None


def acquisition_error(e: Exception) -> AcquisitionExhausted:
    if isinstance(e, NotAllowed):
        return CameraPermissionDenied()
    if isinstance(e, NotFound):
        return CameraNotFound()
    if isinstance(e, NotReadable):
        return CameraInUse()
    return AcquisitionExhausted()


class CaptureController:
    """
    Owns the stream and the trigger state of one capture button.
    While a capture runs `trigger_enabled` is False and capture() refuses re-entry.
    """

    def __init__(self, devices: MediaDevices, geolocation: Optional[Geolocation] = None,
                 options: Optional[CaptureOptions] = None,
                 status: Optional[Callable[[str], None]] = None):
        self.devices = devices
        self.geolocation = geolocation
        self.options = options or CaptureOptions.front()
        self._status = status
        self._stream: Optional[MediaStream] = None
        self._busy = False

    @property
    def trigger_enabled(self) -> bool:
        return not self._busy

    @property
    def stream(self) -> Optional[MediaStream]:
        return self._stream

    def status(self, text: str) -> None:
        log.debug("[capture] %s", text)
        if self._status:
            self._status(text)

    # ---- camera --------------------------------------------------------------

    def strategies(self, device: Optional[MediaDeviceInfo]) -> List[Tuple[str, VideoConstraints]]:
        o = self.options
        steps = []
        if device is not None:
            steps.append(("exact device", VideoConstraints(
                device_id=device.device_id, facing_mode=o.facing_mode,
                width=o.ideal_width, height=o.ideal_height)))
        steps.append(("facing mode", VideoConstraints(
            facing_mode=o.facing_mode, width=o.ideal_width, height=o.ideal_height)))
        steps.append(("any camera", ANY_CAMERA))
        return steps

    async def acquire_camera(self) -> MediaStream:
        try:
            devices = await self.devices.enumerate_devices()
        except MediaError as e:
            log.info("[capture] device enumeration failed: %s", e)
            devices = []

        device = select_device(devices, self.options.facing_mode)
        if device is not None:
            log.info("[capture] found %s camera: %s", self.options.facing_mode, device.label)

        last: Exception = NotFound("no camera")
        for name, constraints in self.strategies(device):
            try:
                return await self.devices.get_user_media(constraints)
            except MediaError as e:
                log.info("[capture] %s failed (%s), trying next", name, e)
                last = e
        log.warning("[capture] camera setup failed: %s", last)
        raise acquisition_error(last) from last

    def release(self) -> None:
        """Stop every track; safe to call any number of times."""
        if self._stream is not None:
            self._stream.stop()
            self._stream = None

    # ---- capture ---------------------------------------------------------------

    async def capture(self) -> CapturedPhoto:
        if self._busy:
            raise CaptureBusy()
        self._busy = True
        try:
            return await self._capture()
        finally:
            self._busy = False

    async def _capture(self) -> CapturedPhoto:
        try:
            self.status("Requesting camera access...")
            self._stream = await self.acquire_camera()

            self.status("Getting location...")
            fix = await locate(self.geolocation, self.options.geolocation_timeout, high_accuracy=True)
            self.status("Location ready. Smile!" if fix.ok else "Camera ready. Smile!")

            await asyncio.sleep(self.options.stabilize_delay)

            self.status("Capturing photo...")
            try:
                frame = await self._stream.read_frame()
            except MediaError as e:
                raise FrameCaptureFailed() from e
            taken_at = datetime.now(timezone.utc)
            frame = fit_to(frame, self._stream.width, self._stream.height)
            # camera off as soon as the frame is in hand
            self.release()

            if self.options.mirror:
                frame = mirror(frame)
            try:
                data = await asyncio.to_thread(encode_jpeg, frame, self.options.jpeg_quality)
            except Exception as e:
                raise FrameCaptureFailed() from e
            return CapturedPhoto(data=data, taken_at=taken_at, location=fix.location)
        finally:
            self.release()

    async def capture_and_submit(self, client: PhotoDropClient,
                                 gallery: Optional[Gallery] = None) -> GalleryEntry:
        """The capture button: capture, upload, show in the gallery."""
        if self._busy:
            raise CaptureBusy()
        self._busy = True
        try:
            photo = await self._capture()
            self.status("Uploading...")
            url = await client.submit(photo)
        finally:
            self._busy = False
        self.status("Photo uploaded!")
        taken_at = photo.taken_at.astimezone()
        if gallery is not None:
            return gallery.add_capture(url, taken_at)
        return GalleryEntry.from_url(url, taken_at)
