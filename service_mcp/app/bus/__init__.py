"""
Message bus integration: Kafka producer/consumer managers and handlers.
"""

from .consumer import BusConsumer, BusMessage
from .handlers import EchoHandler, ExampleReply, ExampleRequest
from .producer import BusProducer

__all__ = [
    "BusConsumer",
    "BusMessage",
    "BusProducer",
    "EchoHandler",
    "ExampleReply",
    "ExampleRequest",
]
