"""
Kafka producer for MCP reply and event topics.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import kafka
from kafka.errors import KafkaError

from shared.errors import MCPServiceException
from shared.logging import get_logger


class BusProducer:
    """Manages the Kafka producer used to publish replies."""

    def __init__(self, bootstrap_servers: str, client_id: str = "modelo-mcp"):
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self.logger = get_logger("mcp.bus.producer")
        self.producer: Optional[kafka.KafkaProducer] = None

    async def start(self):
        """Start the Kafka producer."""
        try:
            self.producer = kafka.KafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                value_serializer=lambda x: json.dumps(x, default=str).encode('utf-8'),
                key_serializer=lambda x: x.encode('utf-8') if x else None,
                acks='all',
                retries=3,
                linger_ms=10
            )
            self.logger.info("Kafka producer started")

        except Exception as e:
            self.logger.error("Failed to start Kafka producer", error=str(e))
            raise MCPServiceException("BUS_PRODUCER_START_FAILED", str(e)) from e

    async def stop(self):
        """Flush and close the Kafka producer."""
        if self.producer:
            self.producer.flush()
            self.producer.close()
            self.producer = None
            self.logger.info("Kafka producer stopped")

    async def send_message(
        self,
        topic: str,
        message: Dict[str, Any],
        key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> bool:
        """Publish a message and wait for the broker acknowledgement."""
        if not self.producer:
            raise MCPServiceException("BUS_PRODUCER_NOT_STARTED", "Producer not started")

        kafka_headers = [(k, v.encode('utf-8')) for k, v in (headers or {}).items()]

        try:
            future = self.producer.send(topic=topic, value=message, key=key, headers=kafka_headers)
            loop = asyncio.get_running_loop()
            record_metadata = await loop.run_in_executor(None, future.get, 10)

            self.logger.debug(
                "Message sent successfully",
                topic=topic,
                partition=record_metadata.partition,
                offset=record_metadata.offset
            )
            return True

        except KafkaError as e:
            self.logger.error("Kafka error sending message", topic=topic, error=str(e))
            return False
