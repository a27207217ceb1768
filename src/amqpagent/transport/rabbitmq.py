"""RabbitMQ transport, backed by pika's blocking connection adapter."""

from __future__ import annotations

import contextlib
import functools
import logging
from typing import Any, Callable, Dict, List, Optional

import pika
import pika.exceptions

from . import base
from .base import Message, TransportFailure

logger = logging.getLogger(__name__)


def _broker_params(options: Dict[str, Any]) -> pika.ConnectionParameters:
    credentials = pika.PlainCredentials(options["user"], options["password"])
    return pika.ConnectionParameters(
        host=options["host"],
        port=int(options["port"]),
        virtual_host=options["vhost"],
        credentials=credentials,
        locale=options["locale"],
        heartbeat=options["heartbeat"],
        blocked_connection_timeout=options["blocked_connection_timeout"],
        connection_attempts=options["connection_attempts"],
        retry_delay=options["retry_delay"],
        socket_timeout=options["socket_timeout"],
    )


@contextlib.contextmanager
def _translated(action: str):
    """Re-raise pika errors as TransportFailure."""
    try:
        yield
    except pika.exceptions.AMQPError as error:
        raise TransportFailure(f"{action} failed: {error!r}") from error


def _from_pika(channel: "Channel", method, properties, body: bytes) -> Message:
    fields = dict()
    for name in base.PROPERTIES:
        value = getattr(properties, name, None)
        if value is not None:
            fields[name] = value

    encoding = fields.get("content_encoding") or "utf-8"
    try:
        text = body.decode(encoding)
    except LookupError:
        text = body.decode("utf-8", errors="replace")
    except UnicodeDecodeError:
        # Not text; hand the raw bytes to the caller.
        text = body

    message = Message(text, **fields)
    message.channel = channel
    message.delivery_tag = method.delivery_tag
    message.consumer_tag = getattr(method, "consumer_tag", None)
    message.exchange = method.exchange
    message.routing_key = method.routing_key
    message.redelivered = bool(method.redelivered)
    return message


class Channel(base.Channel):
    """A pika BlockingChannel speaking the transport contract."""

    def __init__(self, connection: "Connection", channel):
        self._connection = connection
        self._channel = channel

    @property
    def connection(self) -> "Connection":
        return self._connection

    @property
    def channel_number(self) -> int:
        return self._channel.channel_number

    @property
    def is_open(self) -> bool:
        return self._channel.is_open

    def close(self) -> None:
        if not self._channel.is_open:
            return
        try:
            self._channel.close()
        except pika.exceptions.AMQPError as error:
            # Closed underneath us by the peer; nothing left to release.
            logger.debug("channel %d already closed: %r", self.channel_number, error)

    def queue_declare(self, queue: str = "", passive: bool = False,
                      durable: bool = False, exclusive: bool = False,
                      auto_delete: bool = False,
                      arguments: Optional[dict] = None) -> str:
        with _translated("queue.declare"):
            result = self._channel.queue_declare(
                queue=queue,
                passive=passive,
                durable=durable,
                exclusive=exclusive,
                auto_delete=auto_delete,
                arguments=arguments,
            )
        return result.method.queue

    def queue_delete(self, queue: str) -> None:
        with _translated("queue.delete"):
            self._channel.queue_delete(queue=queue)

    def queue_bind(self, queue: str, exchange: str, routing_key: str = "",
                   arguments: Optional[dict] = None) -> None:
        with _translated("queue.bind"):
            self._channel.queue_bind(
                queue=queue,
                exchange=exchange,
                routing_key=routing_key,
                arguments=arguments,
            )

    def exchange_declare(self, exchange: str, exchange_type: str = "direct",
                         passive: bool = False, durable: bool = False,
                         auto_delete: bool = False, internal: bool = False,
                         arguments: Optional[dict] = None) -> None:
        with _translated("exchange.declare"):
            self._channel.exchange_declare(
                exchange=exchange,
                exchange_type=exchange_type,
                passive=passive,
                durable=durable,
                auto_delete=auto_delete,
                internal=internal,
                arguments=arguments,
            )

    def basic_qos(self, prefetch_count: int = 0, prefetch_size: int = 0,
                  global_qos: bool = False) -> None:
        with _translated("basic.qos"):
            self._channel.basic_qos(
                prefetch_size=prefetch_size or 0,
                prefetch_count=prefetch_count or 0,
                global_qos=bool(global_qos),
            )

    def basic_consume(self, queue: str, callback: base.Callback,
                      consumer_tag: Optional[str] = None,
                      auto_ack: bool = False, exclusive: bool = False,
                      arguments: Optional[dict] = None) -> str:
        on_message = functools.partial(self._on_message, callback)
        with _translated("basic.consume"):
            return self._channel.basic_consume(
                queue=queue,
                on_message_callback=on_message,
                auto_ack=auto_ack,
                exclusive=exclusive,
                consumer_tag=consumer_tag,
                arguments=arguments,
            )

    def _on_message(self, callback: base.Callback, _ch, method, properties, body: bytes) -> None:
        callback(_from_pika(self, method, properties, body))

    def basic_cancel(self, consumer_tag: str) -> None:
        with _translated("basic.cancel"):
            self._channel.basic_cancel(consumer_tag=consumer_tag)

    def basic_publish(self, message: Message, exchange: str = "",
                      routing_key: str = "", mandatory: bool = False) -> None:
        properties = pika.BasicProperties(**message.properties)
        with _translated("basic.publish"):
            self._channel.basic_publish(
                exchange=exchange,
                routing_key=routing_key,
                body=message.body,
                properties=properties,
                mandatory=mandatory,
            )

    def basic_get(self, queue: str, auto_ack: bool = False) -> Optional[Message]:
        with _translated("basic.get"):
            method, properties, body = self._channel.basic_get(queue=queue, auto_ack=auto_ack)
        if method is None:
            return None
        return _from_pika(self, method, properties, body)

    def basic_ack(self, delivery_tag: int, multiple: bool = False) -> None:
        with _translated("basic.ack"):
            self._channel.basic_ack(delivery_tag=delivery_tag, multiple=multiple)

    def basic_nack(self, delivery_tag: int, multiple: bool = False,
                   requeue: bool = True) -> None:
        with _translated("basic.nack"):
            self._channel.basic_nack(delivery_tag=delivery_tag, multiple=multiple, requeue=requeue)

    def basic_reject(self, delivery_tag: int, requeue: bool = True) -> None:
        with _translated("basic.reject"):
            self._channel.basic_reject(delivery_tag=delivery_tag, requeue=requeue)

    def basic_recover(self, requeue: bool = True) -> None:
        with _translated("basic.recover"):
            self._channel.basic_recover(requeue=requeue)

    def wait(self, timeout: Optional[float] = None) -> None:
        # pika dispatches deliveries for every channel of the connection
        # from process_data_events(); there is no per-channel wait.
        self._connection.process(timeout)

    def is_consuming(self) -> bool:
        return self._channel.is_open and bool(self._channel.consumer_tags)


class Connection(base.Connection):
    """A pika BlockingConnection speaking the transport contract."""

    def __init__(self, options: Dict[str, Any]):
        self.options = dict(options)
        with _translated(f"connection to {options['host']}:{options['port']}"):
            self._connection = pika.BlockingConnection(_broker_params(self.options))
        self._channels: List[Channel] = []

    def channel(self, channel_id: Optional[int] = None) -> Channel:
        with _translated("channel.open"):
            opened = self._connection.channel(channel_number=channel_id)
        channel = Channel(self, opened)
        self._channels.append(channel)
        return channel

    @property
    def channels(self) -> List[Channel]:
        self._channels = [channel for channel in self._channels if channel.is_open]
        return list(self._channels)

    @property
    def is_open(self) -> bool:
        return self._connection.is_open

    def close(self) -> None:
        if not self._connection.is_open:
            return
        try:
            self._connection.close()
        except pika.exceptions.AMQPError as error:
            logger.debug("connection already closed: %r", error)
        self._channels = []

    def call_soon(self, callback: Callable[[], Any]) -> None:
        with _translated("callback scheduling"):
            self._connection.add_callback_threadsafe(callback)

    def process(self, timeout: Optional[float] = None) -> None:
        with _translated("event wait"):
            self._connection.process_data_events(time_limit=timeout)


def connect(options: Dict[str, Any]) -> Connection:
    """Open a new connection to the broker described by *options*."""
    logger.debug("connecting to amqp://%s:%s%s", options["host"], options["port"], options["vhost"])
    return Connection(options)
