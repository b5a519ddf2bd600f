
from kafka import KafkaProducer
from kafka.errors import KafkaError
import json
import structlog
from elegance.core.config import Settings

logger = structlog.get_logger(__name__)


class EventPublisher:
    """Publishes order lifecycle events; a no-op when no bootstrap is configured."""

    def __init__(self, settings: Settings):
        self._bootstrap = settings.KAFKA_BOOTSTRAP
        self.topic = settings.TOPIC_ORDER_EVENTS
        self._producer = None

    @property
    def enabled(self) -> bool:
        return bool(self._bootstrap)

    def get_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = KafkaProducer(
                bootstrap_servers=[self._bootstrap],
                value_serializer=lambda v: json.dumps(v).encode("utf-8"),
                key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
                linger_ms=5,
                retries=3,
            )
        return self._producer

    def send(self, key: str, value: dict):
        if not self.enabled:
            logger.debug("order_event_skipped", type=value.get("type"), key=key)
            return
        try:
            p = self.get_producer()
            p.send(self.topic, key=key, value=value)
            p.flush(5)
        except KafkaError:
            # the order row is the source of truth; events are best effort
            logger.exception("order_event_publish_failed", type=value.get("type"), key=key)

    def close(self):
        if self._producer is not None:
            self._producer.close()
            self._producer = None
