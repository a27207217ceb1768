""" Lifecycle hooks for RPC endpoints. The set of events is closed: every
    event an endpoint can fire is a member of :class:`Event`, and binding a
    callback to anything else is an error.
"""

import enum
import logging

logger = logging.getLogger(__name__)


class Event(str, enum.Enum):
    """ The events fired by an endpoint. The value is the dotted name the
        event can also be referred to by; the first segment names the kind
        of subject handed to the callbacks: a connection, a channel, or a
        message (for request and response events).
    """

    CONNECTION_AFTER_OPEN = 'connection.after.open'
    CHANNEL_AFTER_OPEN = 'channel.after.open'
    CHANNEL_BEFORE_CLOSE = 'channel.before.close'
    CONNECTION_BEFORE_CLOSE = 'connection.before.close'

    REQUEST_BEFORE_SEND = 'request.before.send'
    REQUEST_AFTER_SEND = 'request.after.send'
    REQUEST_ON_GET = 'request.on.get'

    RESPONSE_ON_GET = 'response.on.get'
    RESPONSE_BEFORE_SEND = 'response.before.send'
    RESPONSE_AFTER_SEND = 'response.after.send'

    def __str__(self):
        return self.value

    @property
    def subject(self):
        """ The kind of object handed to callbacks as their first argument.
        """

        kind = self.value.split('.', 1)[0]
        if kind in ('request', 'response'):
            return 'message'
        return kind


class Hooks:
    """ Per-endpoint registry of event callbacks. Callbacks are invoked in
        the order they were bound, with the arguments (*subject*, *endpoint*,
        *event*).
    """

    def __init__(self):
        self.bindings = dict()


    def bind(self, event, callback):
        """ Invoke *callback* whenever *event* fires. The *event* may be an
            :class:`Event` member or its string value; unknown names raise
            ValueError.
        """

        event = Event(event)

        if not callable(callback):
            raise TypeError('callback must be callable, got ' + repr(callback))

        try:
            callbacks = self.bindings[event]
        except KeyError:
            callbacks = list()
            self.bindings[event] = callbacks

        callbacks.append(callback)


    def trigger(self, event, subject, endpoint):

        try:
            callbacks = self.bindings[event]
        except KeyError:
            return

        logger.debug('firing %s for %d callback(s)', event, len(callbacks))

        for callback in tuple(callbacks):
            callback(subject, endpoint, event)


    def __contains__(self, event):
        try:
            event = Event(event)
        except ValueError:
            return False

        return event in self.bindings


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
