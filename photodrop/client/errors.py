"""
Client error taxonomy.

Every class carries one fixed, human-readable message; upload errors prefer
the server's own `error` string when it sent one.
"""

from typing import Optional


class PhotoDropError(Exception):
    default_message = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return self.args[0]


# ---- capture ----------------------------------------------------------------

class CaptureError(PhotoDropError):
    pass


class CaptureBusy(CaptureError):
    default_message = "A capture is already in progress."


class AcquisitionExhausted(CaptureError):
    """All camera-selection strategies failed."""
    default_message = "Could not access camera. Please ensure camera permissions are granted."


class CameraPermissionDenied(AcquisitionExhausted):
    default_message = "Camera access was denied. Please allow camera permissions and try again."


class CameraNotFound(AcquisitionExhausted):
    default_message = "No camera found on this device."


class CameraInUse(AcquisitionExhausted):
    default_message = "Camera is already in use by another application."


class FrameCaptureFailed(CaptureError):
    default_message = "Could not capture a frame from the camera."


# ---- upload -----------------------------------------------------------------

class UploadError(PhotoDropError):
    default_message = "Upload failed"


class NetworkFailure(UploadError):
    default_message = "Network error. Please check your connection."


class ApplicationFailure(UploadError):
    """Server answered but flagged success:false."""
    default_message = "Upload failed"


class ServerInternal(UploadError):
    default_message = "Server error"
