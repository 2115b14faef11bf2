"""
Camera access.

`MediaDevices` is the seam the capture controller talks to: enumerate video
inputs, open one under a set of constraints, read frames, stop tracks.
`OpenCVMediaDevices` implements it for local cameras (V4L2 on Linux,
DirectShow on Windows, AVFoundation on macOS).
"""

import asyncio
import logging
import os
import platform
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import cv2
import numpy as np

log = logging.getLogger(__name__)

SYSFS_V4L = Path("/sys/class/video4linux")


# =========================
# Errors (named after the kinds a camera stack reports)
# =========================

class MediaError(Exception):
    kind = "Error"


class NotAllowed(MediaError):
    """Permission to open the camera was refused."""
    kind = "NotAllowedError"


class NotFound(MediaError):
    kind = "NotFoundError"


class NotReadable(MediaError):
    """Device exists but cannot be opened, usually because another process holds it."""
    kind = "NotReadableError"


class Overconstrained(MediaError):
    kind = "OverconstrainedError"


# =========================
# Devices, constraints, streams
# =========================

@dataclass(frozen=True)
class MediaDeviceInfo:
    device_id: str
    label: str = ""
    kind: str = "videoinput"


@dataclass(frozen=True)
class VideoConstraints:
    device_id: Optional[str] = None    # exact match required
    facing_mode: Optional[str] = None  # "user" | "environment"
    width: Optional[int] = None        # ideal, not required
    height: Optional[int] = None


ANY_CAMERA = VideoConstraints()


class MediaStreamTrack:
    def __init__(self, kind: str = "video", on_stop: Optional[Callable[[], None]] = None):
        self.kind = kind
        self.ready_state = "live"
        self._on_stop = on_stop

    def stop(self) -> None:
        if self.ready_state == "ended":
            return
        self.ready_state = "ended"
        if self._on_stop:
            self._on_stop()


class MediaStream(ABC):
    def __init__(self, tracks: List[MediaStreamTrack]):
        self._tracks = tracks

    def get_tracks(self) -> List[MediaStreamTrack]:
        return list(self._tracks)

    @property
    def active(self) -> bool:
        return any(t.ready_state == "live" for t in self._tracks)

    def stop(self) -> None:
        for t in self._tracks:
            t.stop()

    @property
    @abstractmethod
    def width(self) -> int: ...

    @property
    @abstractmethod
    def height(self) -> int: ...

    @abstractmethod
    async def read_frame(self) -> np.ndarray:
        """One BGR frame at the stream's reported resolution."""


class MediaDevices(ABC):
    @abstractmethod
    async def enumerate_devices(self) -> List[MediaDeviceInfo]: ...

    @abstractmethod
    async def get_user_media(self, constraints: VideoConstraints) -> MediaStream: ...


# =========================
# Frame helpers
# =========================

def mirror(frame: np.ndarray) -> np.ndarray:
    """Horizontal flip, i.e. what a selfie preview shows."""
    return cv2.flip(frame, 1)


def fit_to(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize to the stream's reported resolution when the driver handed back something else."""
    if width <= 0 or height <= 0 or frame.shape[:2] == (height, width):
        return frame
    return cv2.resize(frame, (width, height))


def encode_jpeg(frame: np.ndarray, quality: int = 90) -> bytes:
    ok, jpg = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise RuntimeError("cv2.imencode failed")
    return jpg.tobytes()


# =========================
# OpenCV backend
# =========================

class OpenCVStream(MediaStream):
    def __init__(self, cap: "cv2.VideoCapture", source: Union[int, str]):
        self._cap = cap
        self.source = source
        super().__init__([MediaStreamTrack("video", on_stop=cap.release)])

    @property
    def width(self) -> int:
        return int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))

    @property
    def height(self) -> int:
        return int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

    async def read_frame(self) -> np.ndarray:
        if not self.active:
            raise NotReadable("stream already stopped")
        ok, frame = await asyncio.to_thread(self._cap.read)
        if not ok or frame is None:
            raise NotReadable(f"camera {self.source!r} returned no frame")
        return frame


def _backend_fallback() -> Optional[int]:
    system = platform.system().lower()
    return {
        "windows": cv2.CAP_DSHOW,
        "darwin": cv2.CAP_AVFOUNDATION,
        "linux": cv2.CAP_V4L2,
    }.get(system)


class OpenCVMediaDevices(MediaDevices):
    """
    Local cameras through cv2.VideoCapture.

    Device ids are /dev/videoN paths on Linux (labels come from sysfs) and
    plain indices elsewhere. Facing mode has no OpenCV equivalent, so it is
    mapped to a configured index: by default 0 is the user-facing camera and
    1 the environment-facing one, which matches most laptops and phones
    running Linux.
    """

    def __init__(self, facing_indices: Optional[Dict[str, int]] = None, max_probe: int = 4,
                 sysfs: Path = SYSFS_V4L):
        self.facing_indices = facing_indices or {"user": 0, "environment": 1}
        self.max_probe = max_probe
        self.sysfs = Path(sysfs)

    async def enumerate_devices(self) -> List[MediaDeviceInfo]:
        return await asyncio.to_thread(self._scan)

    async def get_user_media(self, constraints: VideoConstraints) -> MediaStream:
        return await asyncio.to_thread(self._open, constraints)

    def _scan(self) -> List[MediaDeviceInfo]:
        if not self.sysfs.is_dir():
            return []
        devices = []
        for entry in sorted(self.sysfs.iterdir()):
            if not entry.name.startswith("video"):
                continue
            try:
                label = (entry / "name").read_text().strip()
            except OSError:
                label = ""
            devices.append(MediaDeviceInfo(device_id=f"/dev/{entry.name}", label=label))
        return devices

    def _open(self, c: VideoConstraints) -> OpenCVStream:
        if c.device_id is not None:
            source: Union[int, str] = int(c.device_id) if c.device_id.isdigit() else c.device_id
            return self._open_source(source, c)
        if c.facing_mode is not None:
            if c.facing_mode not in self.facing_indices:
                raise Overconstrained(f"no camera mapped to facing mode {c.facing_mode!r}")
            return self._open_source(self.facing_indices[c.facing_mode], c)

        # unconstrained: first camera that opens
        last: MediaError = NotFound("no camera found")
        for idx in range(self.max_probe):
            try:
                return self._open_source(idx, c)
            except NotFound:
                continue
            except MediaError as e:
                last = e
        raise last

    def _open_source(self, source: Union[int, str], c: VideoConstraints) -> OpenCVStream:
        path = source if isinstance(source, str) else f"/dev/video{source}"
        if platform.system() == "Linux" or isinstance(source, str):
            if not os.path.exists(path):
                raise NotFound(f"{path} does not exist")
            if not os.access(path, os.R_OK | os.W_OK):
                raise NotAllowed(f"no permission to open {path}")

        cap = cv2.VideoCapture(source)
        if not cap.isOpened():
            cap.release()
            fallback = _backend_fallback()
            if fallback is not None:
                cap = cv2.VideoCapture(source, fallback)
        if not cap.isOpened():
            cap.release()
            raise NotReadable(f"could not open camera {source!r}")

        if c.width and c.height:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, c.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, c.height)
        log.debug("[camera] opened %r at %sx%s", source,
                  cap.get(cv2.CAP_PROP_FRAME_WIDTH), cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return OpenCVStream(cap, source)
