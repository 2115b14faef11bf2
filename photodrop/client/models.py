from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple

from photodrop.client.geolocation import Location


@dataclass(frozen=True)
class CapturedPhoto:
    """One encoded still frame, ready to hand to the upload client."""
    data: bytes
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    location: Optional[Location] = None
    content_type: str = "image/jpeg"

    @property
    def coordinates(self) -> Tuple[float, float]:
        """(latitude, longitude); (0, 0) when the location is unknown."""
        if self.location is None:
            return 0.0, 0.0
        return self.location.latitude, self.location.longitude

    @property
    def filename(self) -> str:
        return f"selfie-{int(self.taken_at.timestamp() * 1000)}.jpg"
