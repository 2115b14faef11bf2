"""
Server configuration via ENV VARS.

Everything has a default so `photodrop-server` runs on a laptop with no setup:
photos land in ./uploads and MQTT notifications stay off.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


def _csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass
class Settings:
    # Content store: every uploaded photo is one file in here
    storage_root: Path = Path("uploads")
    # Upper bound for a single photo (bytes)
    max_upload_bytes: int = 10 * 1024 * 1024
    # Browsers on other hosts may post to /upload; "*" for LAN use
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    # Gallery page reload interval (seconds)
    gallery_refresh_sec: int = 30

    # MQTT broker for "new photo" notifications; None disables publishing
    mqtt_host: Optional[str] = None
    mqtt_port: int = 1883
    mqtt_user: Optional[str] = None
    mqtt_pass: Optional[str] = None
    mqtt_topic_prefix: str = "photodrop"

    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            storage_root=Path(os.getenv("STORAGE_ROOT", "uploads")),
            max_upload_bytes=int(float(os.getenv("MAX_UPLOAD_MB", "10")) * 1024 * 1024),
            cors_origins=_csv(os.getenv("CORS_ORIGINS", "*")) or ["*"],
            gallery_refresh_sec=int(os.getenv("GALLERY_REFRESH_SEC", "30")),
            mqtt_host=os.getenv("MQTT_HOST") or None,
            mqtt_port=int(os.getenv("MQTT_PORT", "1883")),
            mqtt_user=os.getenv("MQTT_USER") or None,
            mqtt_pass=os.getenv("MQTT_PASS") or None,
            mqtt_topic_prefix=os.getenv("MQTT_TOPIC_PREFIX", "photodrop"),
            host=os.getenv("UVICORN_HOST", "0.0.0.0"),
            port=int(os.getenv("UVICORN_PORT", "8000")),
        )
