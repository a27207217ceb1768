""" Request/response semantics and a lightweight command protocol layered
    on top of an AMQP message broker. This includes the RPC endpoints, where
    one process calls into another through a pair of queues, and workers
    that publish and consume ordinary data messages, some of which may be
    tagged as commands.
"""

# Utility components.

from . import errors
from . import override
from . import config
from . import serializer
from . import command
from . import events

# Broker access.

from . import transport
from .transport import Message, TransportFailure, TransportTimeout

# Primary public-facing interfaces.

from . import rpc
from . import worker

from .errors import AgentError, ProtocolViolation, CorrelationMismatch, ReservedKeyError
from .events import Event
from .rpc import ClientEndpoint, ServerEndpoint
from .worker import Publisher, Consumer

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
