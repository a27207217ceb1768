""" Long-running workers built on the transport: a :class:`Publisher` that
    declares and feeds an exchange, and a :class:`Consumer` that drains a
    queue and reacts to command envelopes.
"""

from .base import Worker
from .publisher import Publisher
from .consumer import Consumer

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
