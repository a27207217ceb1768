"""Transport interface.

This is the (small) contract that transport implementations should follow.
The endpoints and workers only ever talk to a broker through it, so that
they behave identically regardless of the backend.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..errors import AgentError


# Transport agnostic exceptions

class TransportFailure(AgentError):
    """Any error surfaced by the underlying broker client."""


class TransportTimeout(TransportFailure):
    """A bounded wait elapsed before the expected delivery arrived."""


# The AMQP basic properties a Message may carry.

PROPERTIES = (
    "content_type",
    "content_encoding",
    "headers",
    "delivery_mode",
    "priority",
    "correlation_id",
    "reply_to",
    "expiration",
    "message_id",
    "timestamp",
    "type",
    "user_id",
    "app_id",
)


class Message:
    """A message body plus its AMQP properties.

    Messages handed to consumer callbacks additionally know the channel
    they were delivered on, which makes :meth:`ack`, :meth:`nack` and
    :meth:`reject` available.
    """

    def __init__(self, body: Any = "", **properties):
        for name in properties:
            if name not in PROPERTIES:
                raise ValueError(f"unknown message property: {name!r}")

        self.body = body
        self.properties: Dict[str, Any] = dict(properties)

        self.channel: Optional[Channel] = None
        self.delivery_tag: Optional[int] = None
        self.consumer_tag: Optional[str] = None
        self.exchange: Optional[str] = None
        self.routing_key: Optional[str] = None
        self.redelivered = False

    def __repr__(self) -> str:
        return f"Message({self.body!r}, **{self.properties!r})"

    def get(self, name: str) -> Any:
        if name not in PROPERTIES:
            raise ValueError(f"unknown message property: {name!r}")
        return self.properties.get(name)

    def set(self, name: str, value: Any) -> None:
        if name not in PROPERTIES:
            raise ValueError(f"unknown message property: {name!r}")
        if value is None:
            self.properties.pop(name, None)
        else:
            self.properties[name] = value

    @property
    def reply_to(self) -> Optional[str]:
        return self.properties.get("reply_to")

    @property
    def correlation_id(self) -> Optional[str]:
        return self.properties.get("correlation_id")

    @property
    def timestamp(self) -> Optional[int]:
        return self.properties.get("timestamp")

    def copy(self) -> "Message":
        """Return an undelivered copy with the same body and properties."""
        return Message(self.body, **copy.deepcopy(self.properties))

    def ack(self, multiple: bool = False) -> None:
        self._delivered().basic_ack(self.delivery_tag, multiple=multiple)

    def nack(self, requeue: bool = True, multiple: bool = False) -> None:
        self._delivered().basic_nack(self.delivery_tag, multiple=multiple, requeue=requeue)

    def reject(self, requeue: bool = True) -> None:
        self._delivered().basic_reject(self.delivery_tag, requeue=requeue)

    def _delivered(self) -> "Channel":
        if self.channel is None or self.delivery_tag is None:
            raise TransportFailure("message was not delivered by a broker")
        return self.channel


Callback = Callable[[Message], Any]


class Channel(ABC):
    """Minimal contract for a channel on a broker connection."""

    @property
    @abstractmethod
    def connection(self) -> "Connection":
        """The connection this channel belongs to."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the channel is usable, as reported by the transport."""

    @abstractmethod
    def close(self) -> None:
        """Close the channel; closing a closed channel is a no-op."""

    @abstractmethod
    def queue_declare(self, queue: str = "", passive: bool = False,
                      durable: bool = False, exclusive: bool = False,
                      auto_delete: bool = False,
                      arguments: Optional[dict] = None) -> str:
        """Declare a queue and return its name; an empty *queue* asks the
        broker to generate one."""

    @abstractmethod
    def queue_delete(self, queue: str) -> None:
        """Delete a queue, cancelling any consumers on it."""

    @abstractmethod
    def queue_bind(self, queue: str, exchange: str, routing_key: str = "",
                   arguments: Optional[dict] = None) -> None:
        """Bind a queue to an exchange."""

    @abstractmethod
    def exchange_declare(self, exchange: str, exchange_type: str = "direct",
                         passive: bool = False, durable: bool = False,
                         auto_delete: bool = False, internal: bool = False,
                         arguments: Optional[dict] = None) -> None:
        """Declare an exchange."""

    @abstractmethod
    def basic_qos(self, prefetch_count: int = 0, prefetch_size: int = 0,
                  global_qos: bool = False) -> None:
        """Limit the number of unacknowledged deliveries."""

    @abstractmethod
    def basic_consume(self, queue: str, callback: Callback,
                      consumer_tag: Optional[str] = None,
                      auto_ack: bool = False, exclusive: bool = False,
                      arguments: Optional[dict] = None) -> str:
        """Register *callback* for deliveries from *queue*; return the
        consumer tag."""

    @abstractmethod
    def basic_cancel(self, consumer_tag: str) -> None:
        """Stop a consumer."""

    @abstractmethod
    def basic_publish(self, message: Message, exchange: str = "",
                      routing_key: str = "", mandatory: bool = False) -> None:
        """Publish a message."""

    @abstractmethod
    def basic_get(self, queue: str, auto_ack: bool = False) -> Optional[Message]:
        """Fetch a single message, or None if the queue is empty."""

    @abstractmethod
    def basic_ack(self, delivery_tag: int, multiple: bool = False) -> None:
        """Acknowledge a delivery."""

    @abstractmethod
    def basic_nack(self, delivery_tag: int, multiple: bool = False,
                   requeue: bool = True) -> None:
        """Negatively acknowledge a delivery."""

    @abstractmethod
    def basic_reject(self, delivery_tag: int, requeue: bool = True) -> None:
        """Reject a single delivery."""

    @abstractmethod
    def basic_recover(self, requeue: bool = True) -> None:
        """Redeliver every unacknowledged message on this channel."""

    @abstractmethod
    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until at least one consumer callback fired, or until
        *timeout* seconds elapsed; None waits indefinitely."""

    @abstractmethod
    def is_consuming(self) -> bool:
        """Whether any consumer is active on this channel."""


class Connection(ABC):
    """Minimal contract for a broker connection."""

    @abstractmethod
    def channel(self, channel_id: Optional[int] = None) -> Channel:
        """Open a new channel."""

    @property
    @abstractmethod
    def channels(self) -> List[Channel]:
        """The channels presently open on this connection."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the connection is alive, as reported by the transport."""

    @abstractmethod
    def close(self) -> None:
        """Close the connection; closing a closed connection is a no-op."""

    @abstractmethod
    def call_soon(self, callback: Callable[[], Any]) -> None:
        """Run *callback* on the thread driving this connection. Safe to
        call from any thread."""
