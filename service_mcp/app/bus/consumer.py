"""
Kafka consumer dispatching MCP request topics to handlers.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

import kafka
from kafka.errors import KafkaError

from shared.errors import MCPServiceException
from shared.logging import get_logger
from shared.metrics import MetricsCollector


@dataclass
class BusMessage:
    """Kafka message wrapper."""
    topic: str
    partition: int
    offset: int
    key: Optional[bytes]
    value: bytes
    timestamp: Optional[int]
    headers: Optional[Dict[str, bytes]]


MessageHandler = Callable[[BusMessage], Awaitable[None]]


class BusConsumer:
    """Manages the Kafka consumer for request topics.

    Offsets are committed only after the handler for a batch has run, so a
    crash replays unhandled requests rather than dropping them.
    """

    def __init__(self, bootstrap_servers: str, group_id: str,
                 metrics: Optional[MetricsCollector] = None):
        self.bootstrap_servers = bootstrap_servers
        self.group_id = group_id
        self.metrics = metrics
        self.logger = get_logger("mcp.bus.consumer")
        self.consumer: Optional[kafka.KafkaConsumer] = None
        self.message_handlers: Dict[str, MessageHandler] = {}
        self.running = False
        self._consumer_task: Optional[asyncio.Task] = None

    async def start(self, start_loop: bool = True):
        """Start the Kafka consumer and, optionally, the polling loop."""
        try:
            self.consumer = kafka.KafkaConsumer(
                bootstrap_servers=self.bootstrap_servers,
                group_id=self.group_id,
                auto_offset_reset='latest',
                enable_auto_commit=False,
                max_poll_records=100
            )
        except Exception as e:
            self.logger.error("Failed to start Kafka consumer", error=str(e))
            raise MCPServiceException("BUS_CONSUMER_START_FAILED", str(e)) from e

        if self.message_handlers:
            self.consumer.subscribe(list(self.message_handlers))

        self.running = True
        if start_loop:
            self._consumer_task = asyncio.create_task(self._consume_loop())
        self.logger.info("Kafka consumer started", group_id=self.group_id,
                         topics=self.get_subscribed_topics())

    async def stop(self):
        """Stop the polling loop and close the consumer."""
        self.running = False
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        if self.consumer:
            self.consumer.close()
            self.consumer = None
            self.logger.info("Kafka consumer stopped")

    def subscribe(self, topic: str, handler: MessageHandler):
        """Register a handler; takes effect immediately when already started."""
        if topic in self.message_handlers:
            self.logger.warning("Already subscribed to topic", topic=topic)
            return

        self.message_handlers[topic] = handler
        if self.consumer:
            self.consumer.subscribe(list(self.message_handlers))
        self.logger.info("Subscribed to topic", topic=topic)

    async def poll_once(self, timeout_ms: int = 1000) -> int:
        """Poll one batch, dispatch it and commit. Returns messages handled."""
        if not self.consumer:
            raise MCPServiceException("BUS_CONSUMER_NOT_STARTED", "Consumer not started")

        loop = asyncio.get_running_loop()
        batch = await loop.run_in_executor(None, lambda: self.consumer.poll(timeout_ms=timeout_ms))
        if not batch:
            return 0

        handled = 0
        for topic_partition, records in batch.items():
            handler = self.message_handlers.get(topic_partition.topic)
            if handler is None:
                continue

            for record in records:
                message = BusMessage(
                    topic=record.topic,
                    partition=record.partition,
                    offset=record.offset,
                    key=record.key,
                    value=record.value,
                    timestamp=record.timestamp,
                    headers=dict(record.headers) if record.headers else None
                )
                try:
                    await handler(message)
                    status = "ok"
                except Exception as e:
                    status = "error"
                    self.logger.error(
                        "Error processing message",
                        topic=message.topic,
                        offset=message.offset,
                        error=str(e)
                    )
                if self.metrics:
                    self.metrics.record_bus_message(message.topic, status)
                handled += 1

        self.consumer.commit()
        return handled

    async def _consume_loop(self):
        while self.running:
            try:
                await self.poll_once()
            except KafkaError as e:
                self.logger.error("Kafka error in consume loop", error=str(e))
                await asyncio.sleep(5)
            except Exception as e:
                # Unrecoverable: stop so health checks report the bus as down
                self.logger.error("Consume loop crashed", error=str(e), exc_info=True)
                self.running = False

    def get_subscribed_topics(self) -> List[str]:
        """Get list of subscribed topics."""
        return list(self.message_handlers)

    def is_running(self) -> bool:
        return self.running
