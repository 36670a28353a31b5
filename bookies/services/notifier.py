import json
import logging
import threading
import ssl
from pathlib import Path
from typing import Optional, Dict
import paho.mqtt.client as mqtt
from bookies.config import settings
from bookies.utils.timezone import now_local

logger = logging.getLogger(__name__)


class StatusNotifier:
    """Publishes book status changes to MQTT for clients watching the catalogue.

    Events go out after the transition has committed. A broker that is down
    or slow never affects the lifecycle itself: failures are logged and the
    event is dropped.
    """

    def __init__(self):
        self.client: Optional[mqtt.Client] = None
        self.is_connected = False
        self._lock = threading.Lock()

    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client connects to broker."""
        if not reason_code.is_failure:
            self.is_connected = True
            logger.info(f"MQTT client connected to {settings.mqtt_broker}:{settings.mqtt_port}")
        else:
            logger.error(f"MQTT connection failed: {reason_code}")
            self.is_connected = False

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client disconnects from broker."""
        self.is_connected = False
        if reason_code.is_failure:
            logger.warning(f"MQTT client disconnected unexpectedly ({reason_code})")
        else:
            logger.info("MQTT client disconnected")

    def topic_for(self, book_id: int) -> str:
        return f"{settings.mqtt_topic_prefix}/books/{book_id}/status"

    def publish_book_event(self, event: str, book: Dict, request: Optional[Dict] = None) -> bool:
        """Publish one lifecycle event. Returns True if the broker accepted it."""
        if not self.is_running():
            logger.debug(f"MQTT not connected, dropping '{event}' event for book {book.get('id')}")
            return False

        topic = self.topic_for(book["id"])
        payload = json.dumps({
            "event": event,
            "book": book,
            "request": request,
            "timestamp": now_local().isoformat(),
        })

        try:
            result = self.client.publish(topic, payload, qos=1)
            if result.rc == mqtt.MQTT_ERR_SUCCESS:
                logger.info(f"Published '{event}' to {topic}")
                return True
            logger.error(f"Failed to publish '{event}' to {topic}: rc={result.rc}")
        except Exception as e:
            logger.error(f"Error publishing '{event}' to {topic}: {e}", exc_info=True)
        return False

    def _setup_tls(self):
        """Configure TLS/SSL for MQTT client."""
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

        if settings.mqtt_ca_cert:
            ca_cert_path = Path(settings.mqtt_ca_cert)
            if not ca_cert_path.exists():
                raise FileNotFoundError(f"CA certificate file not found: {ca_cert_path}")
            context.load_verify_locations(cafile=str(ca_cert_path))
            logger.info(f"Loaded CA certificate from {ca_cert_path}")
        else:
            context.load_default_certs()

        # Mutual TLS
        if settings.mqtt_client_cert and settings.mqtt_client_key:
            client_cert_path = Path(settings.mqtt_client_cert)
            client_key_path = Path(settings.mqtt_client_key)
            for path in (client_cert_path, client_key_path):
                if not path.exists():
                    raise FileNotFoundError(f"Client certificate file not found: {path}")
            context.load_cert_chain(certfile=str(client_cert_path), keyfile=str(client_key_path))
            logger.info(f"Loaded client certificate from {client_cert_path}")

        if settings.mqtt_tls_insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            logger.warning("TLS insecure mode enabled - certificate verification disabled")
        else:
            context.check_hostname = True
            context.verify_mode = ssl.CERT_REQUIRED

        self.client.tls_set_context(context)

    def connect(self):
        """Connect to MQTT broker with optional TLS/SSL support."""
        try:
            with self._lock:
                if self.client and self.is_connected:
                    logger.info("MQTT client already connected")
                    return

                client_id = f"bookies-backend-{threading.current_thread().ident}"
                self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True)
                self.client.on_connect = self.on_connect
                self.client.on_disconnect = self.on_disconnect

                if settings.mqtt_use_tls:
                    self._setup_tls()
                    if settings.mqtt_port == 1883:
                        logger.warning("TLS enabled but port is 1883. Consider using port 8883 for MQTT over TLS.")

                if settings.mqtt_username and settings.mqtt_password:
                    self.client.username_pw_set(settings.mqtt_username, settings.mqtt_password)

                protocol = "TLS" if settings.mqtt_use_tls else "TCP"
                logger.info(f"Connecting to MQTT broker at {settings.mqtt_broker}:{settings.mqtt_port} over {protocol}")
                try:
                    self.client.connect(settings.mqtt_broker, settings.mqtt_port, keepalive=60)
                except (OSError, ValueError) as conn_error:
                    logger.warning(f"Initial MQTT connection failed: {conn_error}. The service will retry automatically.")
                # The network loop keeps retrying in the background
                self.client.loop_start()

        except Exception as e:
            logger.error(f"Error setting up MQTT client: {e}", exc_info=True)
            self.is_connected = False

    def disconnect(self):
        """Disconnect from MQTT broker."""
        with self._lock:
            if self.client:
                self.client.loop_stop()
                self.client.disconnect()
                self.is_connected = False
                logger.info("MQTT client disconnected")

    def is_running(self) -> bool:
        """Check if MQTT service is running and connected."""
        return self.is_connected and self.client is not None


notifier = StatusNotifier()
