"""
Async Kafka producer.

Publishes one event type:
  notifications — emitted whenever a notification row is stored
                  (follow, like, RSVP, booking).
                  Consumed by: the push-delivery service (FCM).

With KAFKA_ENABLED=false the producer is never started and publishing is a
no-op, so the API runs without a broker.
"""
import json
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer

from bydbio.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None


async def init_kafka() -> None:
    global _producer
    if not settings.kafka_enabled:
        logger.info("Kafka disabled — notification events will not be published")
        return
    _producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        acks="all",          # wait for all in-sync replicas
        enable_idempotence=True,
    )
    await _producer.start()
    logger.info(
        "Kafka producer started → %s", settings.kafka_bootstrap_servers
    )


async def stop_kafka() -> None:
    if _producer:
        await _producer.stop()


def get_producer() -> AIOKafkaProducer:
    if _producer is None:
        raise RuntimeError("Kafka producer not initialised")
    return _producer


async def publish_notification(notification: dict) -> None:
    """
    Emit a Notification event to the 'notifications' topic.

    Schema:
      { id, user_id, actor_id, type, entity_id, entity_type, entity_title, created_at }
    """
    if not settings.kafka_enabled:
        return
    producer = get_producer()
    await producer.send_and_wait(settings.kafka_topic_notifications, notification)
    logger.debug(
        "Published %s notification for user_id=%s",
        notification.get("type"),
        notification.get("user_id"),
    )
