"""In-process transport.

A small broker living in the memory of the current process, following the
same contract as the RabbitMQ transport. It is thread-safe: endpoints on
different threads can talk to each other through it, which is how the
test-suite exercises the RPC round trip without a running broker.

Consumer callbacks are never invoked while the broker lock is held; they
run on whichever thread calls :meth:`Channel.wait`.
"""

from __future__ import annotations

import collections
import itertools
import logging
import threading
import time
import uuid
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from . import base
from .base import Message, TransportFailure

logger = logging.getLogger(__name__)


def _topic_match(pattern: List[str], words: List[str]) -> bool:
    if not pattern:
        return not words

    head = pattern[0]
    rest = pattern[1:]

    if head == "#":
        # Zero or more words.
        for skip in range(len(words) + 1):
            if _topic_match(rest, words[skip:]):
                return True
        return False

    if not words:
        return False

    if head == "*" or head == words[0]:
        return _topic_match(rest, words[1:])

    return False


def _headers_match(arguments: Optional[dict], headers: Optional[dict]) -> bool:
    arguments = dict(arguments or {})
    headers = headers or {}
    mode = arguments.pop("x-match", "all")

    wanted = {key: value for key, value in arguments.items() if not key.startswith("x-")}
    if not wanted:
        return True

    matches = [key in headers and headers[key] == value for key, value in wanted.items()]
    if mode == "any":
        return any(matches)
    return all(matches)


class _Exchange:

    def __init__(self, name: str, exchange_type: str, durable: bool = False,
                 auto_delete: bool = False, internal: bool = False):
        if exchange_type not in ("direct", "fanout", "topic", "headers"):
            raise TransportFailure(f"COMMAND_INVALID - unknown exchange type {exchange_type!r}")

        self.name = name
        self.type = exchange_type
        self.durable = durable
        self.auto_delete = auto_delete
        self.internal = internal
        self.bindings: List[Tuple[str, str, Optional[dict]]] = []

    def bind(self, queue: str, routing_key: str, arguments: Optional[dict]) -> None:
        binding = (queue, routing_key, arguments)
        if binding not in self.bindings:
            self.bindings.append(binding)

    def unbind_queue(self, queue: str) -> None:
        self.bindings = [binding for binding in self.bindings if binding[0] != queue]

    def route(self, routing_key: str, headers: Optional[dict]) -> List[str]:
        targets = []

        for queue, key, arguments in self.bindings:
            if self.type == "fanout":
                matched = True
            elif self.type == "direct":
                matched = key == routing_key
            elif self.type == "topic":
                matched = _topic_match(key.split("."), routing_key.split("."))
            else:
                matched = _headers_match(arguments, headers)

            if matched and queue not in targets:
                targets.append(queue)

        return targets


class _Consumer:

    def __init__(self, tag: str, queue: str, channel: "Channel", callback: base.Callback,
                 auto_ack: bool, exclusive: bool):
        self.tag = tag
        self.queue = queue
        self.channel = channel
        self.callback = callback
        self.auto_ack = auto_ack
        self.exclusive = exclusive


class _Queue:

    def __init__(self, name: str, durable: bool, exclusive: bool, auto_delete: bool,
                 arguments: Optional[dict], owner: Optional["Connection"]):
        self.name = name
        self.durable = durable
        self.exclusive = exclusive
        self.auto_delete = auto_delete
        self.arguments = arguments
        self.owner = owner if exclusive else None
        self.messages: Deque[Message] = collections.deque()
        self.consumers: List[_Consumer] = []
        self.cursor = 0

    def check_access(self, connection: "Connection") -> None:
        if self.owner is not None and self.owner is not connection:
            raise TransportFailure(
                f"RESOURCE_LOCKED - cannot obtain exclusive access to locked queue {self.name!r}"
            )


class Broker:
    """Queues and exchanges shared by every memory connection."""

    def __init__(self):
        self.condition = threading.Condition(threading.RLock())
        self.queues: Dict[str, _Queue] = {}
        self.exchanges: Dict[str, _Exchange] = {}
        self.connections: List[Connection] = []
        self._tags = itertools.count(1)
        self.reset()

    def reset(self) -> None:
        """Forget every queue, exchange and connection."""
        with self.condition:
            for connection in list(self.connections):
                connection.close()

            self.queues.clear()
            self.exchanges.clear()
            self.connections = []

            for name, exchange_type in (("amq.direct", "direct"), ("amq.fanout", "fanout"),
                                        ("amq.topic", "topic"), ("amq.headers", "headers")):
                self.exchanges[name] = _Exchange(name, exchange_type, durable=True)

            self.condition.notify_all()

    def connect(self, options: Optional[Dict[str, Any]] = None) -> "Connection":
        with self.condition:
            connection = Connection(self, options or {})
            self.connections.append(connection)
            return connection

    def consumer_tag(self) -> str:
        return f"amq.ctag-{next(self._tags)}"

    def queue(self, name: str) -> _Queue:
        try:
            return self.queues[name]
        except KeyError:
            raise TransportFailure(f"NOT_FOUND - no queue {name!r}") from None

    def exchange(self, name: str) -> _Exchange:
        try:
            return self.exchanges[name]
        except KeyError:
            raise TransportFailure(f"NOT_FOUND - no exchange {name!r}") from None

    def route(self, message: Message, exchange: str, routing_key: str) -> List[str]:
        if exchange == "":
            if routing_key in self.queues:
                return [routing_key]
            return []

        return self.exchange(exchange).route(routing_key, message.get("headers"))

    def enqueue(self, queue: _Queue, message: Message, front: bool = False) -> None:
        if front:
            queue.messages.appendleft(message)
        else:
            queue.messages.append(message)
        self.dispatch(queue)

    def dispatch(self, queue: _Queue) -> None:
        """Hand queued messages to consumers, round-robin, within prefetch."""
        delivered = False

        while queue.messages and queue.consumers:
            count = len(queue.consumers)
            for _ in range(count):
                consumer = queue.consumers[queue.cursor % count]
                queue.cursor += 1
                if consumer.auto_ack or consumer.channel.has_capacity():
                    break
            else:
                break

            message = queue.messages.popleft()
            consumer.channel.deliver(consumer, queue, message)
            delivered = True

        if delivered:
            self.condition.notify_all()

    def delete_queue(self, name: str) -> None:
        queue = self.queues.pop(name, None)
        if queue is None:
            return

        for consumer in list(queue.consumers):
            consumer.channel.drop_consumer(consumer.tag)

        for exchange in self.exchanges.values():
            exchange.unbind_queue(name)

        self.condition.notify_all()


class Channel(base.Channel):
    """A channel on the in-process broker."""

    def __init__(self, connection: "Connection", channel_number: int):
        self._connection = connection
        self.broker = connection.broker
        self.channel_number = channel_number
        self._open = True

        self.prefetch_count = 0
        self.consumers: Dict[str, _Consumer] = {}
        self.unacked: Dict[int, Tuple[str, Message]] = {}
        self.deliveries: Deque[Tuple[_Consumer, Message]] = collections.deque()
        self._tags = itertools.count(1)

    @property
    def connection(self) -> "Connection":
        return self._connection

    @property
    def is_open(self) -> bool:
        return self._open and self._connection.is_open

    def _check_open(self) -> None:
        if not self.is_open:
            raise TransportFailure(f"channel {self.channel_number} is closed")

    def close(self) -> None:
        with self.broker.condition:
            if not self._open:
                return

            for tag in list(self.consumers):
                self.drop_consumer(tag)

            self._requeue_unacked()
            self._open = False
            self.broker.condition.notify_all()

    # Broker-side helpers; the caller holds the broker lock.

    def has_capacity(self) -> bool:
        return self.prefetch_count == 0 or len(self.unacked) < self.prefetch_count

    def deliver(self, consumer: _Consumer, queue: _Queue, stored: Message) -> None:
        message = self._delivered(stored)
        message.consumer_tag = consumer.tag
        if not consumer.auto_ack:
            self.unacked[message.delivery_tag] = (queue.name, stored)
        self.deliveries.append((consumer, message))

    def drop_consumer(self, tag: str) -> None:
        consumer = self.consumers.pop(tag, None)
        if consumer is None:
            return

        queue = self.broker.queues.get(consumer.queue)
        if queue is not None:
            queue.consumers = [other for other in queue.consumers if other is not consumer]

        # Deliveries not yet handed to the callback go back to the queue.
        kept = collections.deque()
        returned = []
        for pending in self.deliveries:
            if pending[0] is consumer:
                returned.append(pending[1].delivery_tag)
            else:
                kept.append(pending)
        self.deliveries = kept
        for delivery_tag in reversed(returned):
            self._requeue(delivery_tag)

        if queue is not None and queue.auto_delete and not queue.consumers:
            self.broker.delete_queue(queue.name)

    def _delivered(self, stored: Message) -> Message:
        message = stored.copy()
        message.channel = self
        message.delivery_tag = next(self._tags)
        message.exchange = stored.exchange
        message.routing_key = stored.routing_key
        message.redelivered = stored.redelivered
        return message

    def _requeue(self, delivery_tag: int, requeue: bool = True) -> None:
        try:
            name, stored = self.unacked.pop(delivery_tag)
        except KeyError:
            return

        queue = self.broker.queues.get(name)
        if requeue and queue is not None:
            stored.redelivered = True
            self.broker.enqueue(queue, stored, front=True)

    def _requeue_unacked(self) -> None:
        self.deliveries = collections.deque(
            pending for pending in self.deliveries if pending[1].delivery_tag not in self.unacked
        )
        for tag in sorted(self.unacked, reverse=True):
            self._requeue(tag)

    def _settle(self, delivery_tag: int, multiple: bool) -> List[int]:
        if delivery_tag not in self.unacked:
            raise TransportFailure(f"PRECONDITION_FAILED - unknown delivery tag {delivery_tag}")

        if multiple:
            return sorted(tag for tag in self.unacked if tag <= delivery_tag)
        return [delivery_tag]

    def _redispatch(self) -> None:
        for consumer in list(self.consumers.values()):
            queue = self.broker.queues.get(consumer.queue)
            if queue is not None:
                self.broker.dispatch(queue)

    # Contract.

    def queue_declare(self, queue: str = "", passive: bool = False,
                      durable: bool = False, exclusive: bool = False,
                      auto_delete: bool = False,
                      arguments: Optional[dict] = None) -> str:
        with self.broker.condition:
            self._check_open()

            if passive:
                existing = self.broker.queue(queue)
                existing.check_access(self._connection)
                return existing.name

            if not queue:
                queue = "amq.gen-" + uuid.uuid4().hex

            existing = self.broker.queues.get(queue)
            if existing is not None:
                existing.check_access(self._connection)
                return existing.name

            self.broker.queues[queue] = _Queue(
                queue, durable, exclusive, auto_delete, arguments, self._connection
            )
            logger.debug("declared queue %s", queue)
            return queue

    def queue_delete(self, queue: str) -> None:
        with self.broker.condition:
            self._check_open()
            existing = self.broker.queues.get(queue)
            if existing is None:
                return
            existing.check_access(self._connection)
            self.broker.delete_queue(queue)

    def queue_bind(self, queue: str, exchange: str, routing_key: str = "",
                   arguments: Optional[dict] = None) -> None:
        with self.broker.condition:
            self._check_open()
            self.broker.queue(queue).check_access(self._connection)
            if exchange == "":
                raise TransportFailure("ACCESS_REFUSED - cannot bind to the default exchange")
            self.broker.exchange(exchange).bind(queue, routing_key, arguments)

    def exchange_declare(self, exchange: str, exchange_type: str = "direct",
                         passive: bool = False, durable: bool = False,
                         auto_delete: bool = False, internal: bool = False,
                         arguments: Optional[dict] = None) -> None:
        with self.broker.condition:
            self._check_open()

            if passive:
                self.broker.exchange(exchange)
                return

            existing = self.broker.exchanges.get(exchange)
            if existing is not None:
                if existing.type != exchange_type:
                    raise TransportFailure(
                        f"PRECONDITION_FAILED - exchange {exchange!r} is of type {existing.type!r}"
                    )
                return

            self.broker.exchanges[exchange] = _Exchange(
                exchange, exchange_type, durable, auto_delete, internal
            )

    def basic_qos(self, prefetch_count: int = 0, prefetch_size: int = 0,
                  global_qos: bool = False) -> None:
        with self.broker.condition:
            self._check_open()
            self.prefetch_count = prefetch_count or 0
            self._redispatch()

    def basic_consume(self, queue: str, callback: base.Callback,
                      consumer_tag: Optional[str] = None,
                      auto_ack: bool = False, exclusive: bool = False,
                      arguments: Optional[dict] = None) -> str:
        if not callable(callback):
            raise TypeError(f"callback must be callable, got {callback!r}")

        with self.broker.condition:
            self._check_open()
            target = self.broker.queue(queue)
            target.check_access(self._connection)

            if any(consumer.exclusive for consumer in target.consumers):
                raise TransportFailure(f"ACCESS_REFUSED - queue {queue!r} has an exclusive consumer")
            if exclusive and target.consumers:
                raise TransportFailure(f"ACCESS_REFUSED - queue {queue!r} already has consumers")

            tag = consumer_tag or self.broker.consumer_tag()
            if tag in self.consumers:
                raise TransportFailure(f"NOT_ALLOWED - duplicate consumer tag {tag!r}")

            consumer = _Consumer(tag, queue, self, callback, auto_ack, exclusive)
            self.consumers[tag] = consumer
            target.consumers.append(consumer)
            self.broker.dispatch(target)
            return tag

    def basic_cancel(self, consumer_tag: str) -> None:
        with self.broker.condition:
            if not self._open:
                return
            self.drop_consumer(consumer_tag)
            self.broker.condition.notify_all()

    def basic_publish(self, message: Message, exchange: str = "",
                      routing_key: str = "", mandatory: bool = False) -> None:
        with self.broker.condition:
            self._check_open()

            targets = self.broker.route(message, exchange, routing_key)
            if not targets:
                if mandatory:
                    raise TransportFailure(f"NO_ROUTE - {exchange!r} -> {routing_key!r}")
                logger.debug("dropped unroutable message: %r -> %r", exchange, routing_key)
                return

            for name in targets:
                stored = message.copy()
                stored.exchange = exchange
                stored.routing_key = routing_key
                self.broker.enqueue(self.broker.queues[name], stored)

    def basic_get(self, queue: str, auto_ack: bool = False) -> Optional[Message]:
        with self.broker.condition:
            self._check_open()
            target = self.broker.queue(queue)
            target.check_access(self._connection)

            if not target.messages:
                return None

            stored = target.messages.popleft()
            message = self._delivered(stored)
            if not auto_ack:
                self.unacked[message.delivery_tag] = (target.name, stored)
            return message

    def basic_ack(self, delivery_tag: int, multiple: bool = False) -> None:
        with self.broker.condition:
            self._check_open()
            for tag in self._settle(delivery_tag, multiple):
                del self.unacked[tag]
            self._redispatch()

    def basic_nack(self, delivery_tag: int, multiple: bool = False,
                   requeue: bool = True) -> None:
        with self.broker.condition:
            self._check_open()
            for tag in reversed(self._settle(delivery_tag, multiple)):
                self._requeue(tag, requeue)
            self._redispatch()

    def basic_reject(self, delivery_tag: int, requeue: bool = True) -> None:
        self.basic_nack(delivery_tag, multiple=False, requeue=requeue)

    def basic_recover(self, requeue: bool = True) -> None:
        with self.broker.condition:
            self._check_open()
            self._requeue_unacked()
            self._redispatch()

    def wait(self, timeout: Optional[float] = None) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout

        with self.broker.condition:
            while not self.deliveries:
                if not self.is_open:
                    raise TransportFailure(f"channel {self.channel_number} is closed")
                if not self.consumers:
                    return

                if deadline is None:
                    self.broker.condition.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return
                    self.broker.condition.wait(remaining)

            consumer, message = self.deliveries.popleft()

        consumer.callback(message)

    def is_consuming(self) -> bool:
        with self.broker.condition:
            return self.is_open and bool(self.consumers)


class Connection(base.Connection):
    """A connection to the in-process broker."""

    def __init__(self, broker: Broker, options: Dict[str, Any]):
        self.broker = broker
        self.options = dict(options)
        self._open = True
        self._channels: List[Channel] = []
        self._numbers = itertools.count(1)

    def channel(self, channel_id: Optional[int] = None) -> Channel:
        with self.broker.condition:
            if not self._open:
                raise TransportFailure("connection is closed")

            if channel_id is None:
                channel_id = next(self._numbers)
            elif any(channel.channel_number == channel_id for channel in self.channels):
                raise TransportFailure(f"channel {channel_id} is already open")

            channel = Channel(self, channel_id)
            self._channels.append(channel)
            return channel

    @property
    def channels(self) -> List[Channel]:
        with self.broker.condition:
            self._channels = [channel for channel in self._channels if channel.is_open]
            return list(self._channels)

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        with self.broker.condition:
            if not self._open:
                return

            for channel in list(self._channels):
                channel.close()
            self._channels = []

            for queue in list(self.broker.queues.values()):
                if queue.owner is self:
                    self.broker.delete_queue(queue.name)

            self._open = False
            if self in self.broker.connections:
                self.broker.connections.remove(self)
            self.broker.condition.notify_all()

    def call_soon(self, callback: Callable[[], Any]) -> None:
        # There is no I/O thread to hand the callback to: run it right away,
        # under the broker lock, and wake any waiting channel.
        with self.broker.condition:
            callback()
            self.broker.condition.notify_all()


broker = Broker()


def connect(options: Optional[Dict[str, Any]] = None) -> Connection:
    """Open a new connection to the process-wide in-memory broker."""
    return broker.connect(options)
