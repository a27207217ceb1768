"""Broker transports.

Every transport is a module exposing ``connect(options) -> Connection``,
where the returned objects follow the contract in :mod:`.base`. The
transport used by default is selected with the AMQPAGENT_TRANSPORT
environment variable; it defaults to RabbitMQ.
"""

import os

from .base import Channel, Connection, Message, TransportFailure, TransportTimeout
from . import memory
from . import rabbitmq

backends = {
    "memory": memory,
    "rabbitmq": rabbitmq,
}

default = os.environ.get("AMQPAGENT_TRANSPORT", "rabbitmq")


def get(name=None):
    """Return the transport registered as *name*, or the default one."""
    if name is None:
        name = default

    try:
        return backends[name]
    except KeyError:
        raise ValueError(f"unknown transport: {name!r}") from None


def resolve(backend):
    """Return *backend* if it is a transport object, otherwise look it up
    by name with :func:`get`."""
    if backend is None or isinstance(backend, str):
        return get(backend)
    return backend
