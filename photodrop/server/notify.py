"""
"New photo" announcements over MQTT.

Other sessions (a second client, a wall display, a home automation rule) can
subscribe to <prefix>/photos/new instead of waiting for their next /photos poll.
Publishing is best effort: a broker that is down never fails an upload.
"""

import json
import logging
from typing import Optional

# You need a broker (e.g., Mosquitto) running in LAN for this to do anything.
import paho.mqtt.client as mqtt

from photodrop.names import now_ms
from photodrop.server.config import Settings
from photodrop.server.storage import StoredPhoto

log = logging.getLogger(__name__)


class UploadNotifier:
    def __init__(self, settings: Settings):
        self.topic = f"{settings.mqtt_topic_prefix}/photos/new"
        self._settings = settings
        self._client: Optional[mqtt.Client] = None

    def start(self) -> None:
        s = self._settings
        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id="photodrop_server")
        if s.mqtt_user:
            self._client.username_pw_set(s.mqtt_user, s.mqtt_pass)
        self._client.connect_async(s.mqtt_host, s.mqtt_port, keepalive=60)
        self._client.loop_start()  # background thread
        log.info("[mqtt] publishing uploads to %s on %s:%s", self.topic, s.mqtt_host, s.mqtt_port)

    def stop(self) -> None:
        if self._client is not None:
            self._client.loop_stop()
            self._client.disconnect()
            self._client = None

    def photo_stored(self, photo: StoredPhoto, latitude: float, longitude: float) -> None:
        if self._client is None:
            return
        payload = {
            "photoUrl": photo.url,
            "latitude": latitude,
            "longitude": longitude,
            "ts_ms": now_ms(),
        }
        data = json.dumps(payload, separators=(",", ":"))
        # QoS 1: at-least-once, same trade-off as capture commands
        info = self._client.publish(self.topic, data, qos=1, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            log.warning("[mqtt] publish failed (rc=%s) for %s", info.rc, photo.name)


def build_notifier(settings: Settings) -> Optional[UploadNotifier]:
    """None when MQTT_HOST is not configured."""
    if not settings.mqtt_host:
        return None
    return UploadNotifier(settings)
