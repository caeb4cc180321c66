# sitebuilder/core/messaging.py
"""
Outbound events on the RabbitMQ topic exchange.

Routing keys published by this service:
  - order.committed
  - order.failed
  - order.needs_reconciliation
  - notification.email / notification.sms (consumed by the notifier)
"""
import json
import logging
from typing import Any

import pika

from sitebuilder.core.config import get_settings

logger = logging.getLogger(__name__)


class EventPublisher:
    def publish(self, routing_key: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError

    def publish_after_commit(self, routing_key: str, payload: dict[str, Any]) -> None:
        """
        Publish once the state the event describes is already committed.

        A broker failure here must not undo that state, so it is logged
        and swallowed; the event can be replayed from the database.
        """
        try:
            self.publish(routing_key, payload)
        except Exception:
            logger.exception("Failed to publish %s event: %s", routing_key, payload)


class RabbitEventPublisher(EventPublisher):
    def __init__(self, url: str, exchange: str):
        self.url = url
        self.exchange = exchange

    def _connect(self) -> pika.BlockingConnection:
        params = pika.URLParameters(self.url)
        params.heartbeat = 30
        params.blocked_connection_timeout = 30
        return pika.BlockingConnection(params)

    def publish(self, routing_key: str, payload: dict[str, Any]) -> None:
        connection = self._connect()
        try:
            ch = connection.channel()
            ch.exchange_declare(exchange=self.exchange, exchange_type="topic", durable=True)
            body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
            ch.basic_publish(
                exchange=self.exchange,
                routing_key=routing_key,
                body=body,
                properties=pika.BasicProperties(
                    content_type="application/json",
                    delivery_mode=2,  # persistent
                ),
            )
        finally:
            connection.close()
        logger.info("Published %s", routing_key)

    @classmethod
    def from_settings(cls) -> "RabbitEventPublisher":
        settings = get_settings()
        return cls(settings.RABBITMQ_URL, settings.EVENTS_EXCHANGE)
