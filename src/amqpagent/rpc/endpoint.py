""" Connection lifecycle shared by the RPC client and server endpoints,
    including the event hooks and the round-trip latency probe.
"""

import logging
import time

from .. import config
from .. import events
from ..errors import ProtocolViolation
from ..transport import Message, TransportFailure, resolve

logger = logging.getLogger(__name__)


class Endpoint:
    """ An :class:`Endpoint` owns exactly one connection and one channel at
        a time. The *connection_options* are patched against the defaults
        in :data:`amqpagent.config.RPC_CONNECTION_OPTIONS`; the *queue_name*
        is the request queue, and defaults to
        :data:`amqpagent.config.RPC_QUEUE_NAME`. The *transport* is either
        the name of a registered transport or a transport object; if it is
        not specified the default transport is used, see
        :func:`amqpagent.transport.get`.

        An endpoint can be used as a context manager, connecting on entry
        (unless it is already connected) and disconnecting on exit.
    """

    def __init__(self, connection_options=None, queue_name=None, transport=None):

        self.connection_options = config.patch(connection_options, config.RPC_CONNECTION_OPTIONS)

        if queue_name:
            self.queue_name = queue_name
        else:
            self.queue_name = config.RPC_QUEUE_NAME

        self.transport = resolve(transport)
        self.hooks = events.Hooks()

        self.connection = None
        self.channel = None
        self.connected = False

        self.request_body = None
        self.request_queue = None
        self.response_queue = None


    @classmethod
    def from_config(cls, configuration, **kwargs):
        """ Instantiate an endpoint using the relevant sections of a
            :class:`amqpagent.config.Configuration`; any keyword arguments
            take precedence.
        """

        arguments = configuration.select('connection_options', 'queue_name')
        arguments.update(kwargs)
        return cls(**arguments)


    def __enter__(self):

        if not self.is_connected():
            self.connect()

        return self


    def __exit__(self, exc_type, exc_value, traceback):
        self.disconnect()


    def connect(self, connection_options=None):
        """ Open the connection and the channel. The *connection_options*
            are merged into the options of this endpoint permanently. Raises
            :class:`amqpagent.errors.ProtocolViolation` if the endpoint is
            already connected.
        """

        if connection_options:
            self.connection_options = config.patch(connection_options, self.connection_options)

        if self.is_connected():
            raise ProtocolViolation('endpoint is already connected')

        # Leftovers from a connection the peer closed underneath us.
        self._release()

        options = self.connection_options
        logger.debug('connecting to %s:%s', options['host'], options['port'])

        self.connection = self.transport.connect(options)
        self.trigger(events.Event.CONNECTION_AFTER_OPEN, self.connection)

        try:
            self.channel = self.connection.channel()
        except TransportFailure:
            self._release()
            raise

        self.trigger(events.Event.CHANNEL_AFTER_OPEN, self.channel)

        self.connected = True
        return self


    def disconnect(self):
        """ Close the channel and the connection. Does nothing if the
            endpoint is not connected.
        """

        if self.is_connected():
            self.connected = False

            self.trigger(events.Event.CHANNEL_BEFORE_CLOSE, self.channel)
            self.channel.close()

            self.trigger(events.Event.CONNECTION_BEFORE_CLOSE, self.connection)
            self.connection.close()

            logger.debug('disconnected from %s:%s', self.connection_options['host'], self.connection_options['port'])

        self._release()


    def _release(self):
        """ Drop the connection and channel handles, closing them quietly if
            they are still around; no events are fired.
        """

        for handle in (self.channel, self.connection):
            if handle is None:
                continue
            try:
                handle.close()
            except TransportFailure as error:
                logger.debug('ignoring failure while closing %r: %s', handle, error)

        self.channel = None
        self.connection = None
        self.connected = False


    def is_connected(self):
        """ Return True if both the connection and the channel are open, as
            reported by the transport right now; the peer or the network
            can close either one at any time.
        """

        connection = self.connection
        channel = self.channel

        self.connected = (
            connection is not None and
            channel is not None and
            connection.is_open and
            channel.is_open
        )

        return self.connected


    def ping(self):
        """ Measure the round-trip time to the broker, in milliseconds,
            rounded to two decimal places. The live connection of this
            endpoint is used if there is one; otherwise a connection is
            opened for the probe only, and closed afterwards. This call
            blocks until the probe message comes back.
        """

        connection = self.connection
        throwaway = None

        if connection is None or connection.is_open == False:
            throwaway = self.transport.connect(self.connection_options)
            connection = throwaway

        try:
            channel = connection.channel()

            try:
                queue = channel.queue_declare('', exclusive=True, auto_delete=True)
                channel.basic_qos(prefetch_count=1)

                echo = list()

                def received(message):
                    message.ack()
                    echo.append(message.body)

                channel.basic_consume(queue, received)

                start = time.perf_counter()
                channel.basic_publish(Message('ping'), exchange='', routing_key=queue)

                while not echo:
                    channel.wait()

                stop = time.perf_counter()

                channel.queue_delete(queue)
            finally:
                channel.close()
        finally:
            if throwaway is not None:
                throwaway.close()

        elapsed = round((stop - start) * 1000, 2)
        logger.debug('ping: %.2f ms', elapsed)
        return elapsed


    def on(self, event, callback):
        """ Invoke *callback* whenever *event* fires; the *event* is a
            :class:`amqpagent.events.Event` or its string value. The
            callback receives the subject of the event (a connection, a
            channel, or a message), this endpoint, and the event. Returns
            this endpoint, so that calls can be chained.
        """

        self.hooks.bind(event, callback)
        return self


    def trigger(self, event, subject):
        self.hooks.trigger(event, subject, self)


    def callback(self, message):
        """ Default message handler: return the body unchanged. Subclasses
            can override this method to post-process every message.
        """

        return message.body


# end of class Endpoint


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
