"""
Message bus handlers.

``EchoHandler`` is the reference request/reply handler every generated
service starts from: it answers each request with the same message, the
service name and a UTC timestamp.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, ValidationError

from shared.logging import get_logger
from shared.tracing import trace_operation

from .consumer import BusMessage
from .producer import BusProducer


class ExampleRequest(BaseModel):
    message: str


class ExampleReply(BaseModel):
    echo: str
    service: str
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EchoHandler:
    """Replies to ``ExampleRequest`` messages on the configured reply topic."""

    def __init__(self, producer: BusProducer, service_name: str, reply_topic: str):
        self.producer = producer
        self.service_name = service_name
        self.reply_topic = reply_topic
        self.logger = get_logger("mcp.bus.handlers")

    async def __call__(self, message: BusMessage) -> None:
        with trace_operation("bus.echo", topic=message.topic, offset=message.offset):
            try:
                request = ExampleRequest.model_validate_json(message.value)
            except ValidationError as e:
                # Dropped: a poison message must not block the partition
                self.logger.warning(
                    "Discarding malformed request",
                    topic=message.topic,
                    offset=message.offset,
                    error=str(e)
                )
                return

            reply = ExampleReply(echo=request.message, service=self.service_name)
            key = message.key.decode("utf-8") if message.key else None
            await self.producer.send_message(
                self.reply_topic,
                reply.model_dump(mode="json"),
                key=key
            )
        self.logger.info("Handled message", topic=message.topic, reply_topic=self.reply_topic)
