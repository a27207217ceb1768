""" Request/response over the broker: a :class:`ClientEndpoint` sends a
    request and blocks until the correlated reply arrives, a
    :class:`ServerEndpoint` consumes requests and publishes the replies.
"""

from .endpoint import Endpoint
from .client import ClientEndpoint, PendingRequest
from .server import ServerEndpoint

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
