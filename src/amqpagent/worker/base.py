""" Functionality shared by the publishing and consuming workers: owning
    connections and channels, declaring queues, and applying per-call
    option overrides.
"""

import logging

from .. import command
from .. import config
from ..override import overridden
from ..transport import Channel, Connection, Message, TransportFailure, resolve

logger = logging.getLogger(__name__)


class Worker:
    """ Base class for the workers. Each *_options* argument is patched
        against the matching defaults in :mod:`amqpagent.config`; the
        *transport* is either the name of a registered transport or a
        transport object, and defaults to :func:`amqpagent.transport.get`.

        Every method accepting *parameters* applies them on top of the
        persistent options for the duration of that call only. The last
        override applied is recorded in :attr:`mutation`.
    """

    def __init__(self, connection_options=None, channel_options=None, queue_options=None, transport=None):

        self.connection_options = config.patch(connection_options, config.CONNECTION_OPTIONS)
        self.channel_options = config.patch(channel_options, config.CHANNEL_OPTIONS)
        self.queue_options = config.patch(queue_options, config.QUEUE_OPTIONS)

        self.transport = resolve(transport)

        self.connection = None
        self.channel = None
        self.connections = list()
        self.channels = list()
        self.mutation = None


    sections = ('connection_options', 'channel_options', 'queue_options')

    @classmethod
    def from_config(cls, configuration, **kwargs):
        """ Instantiate a worker using the relevant sections of a
            :class:`amqpagent.config.Configuration`; any keyword arguments
            take precedence.
        """

        arguments = configuration.select(*cls.sections)
        arguments.update(kwargs)
        return cls(**arguments)


    @staticmethod
    def shutdown(*objects):
        """ Close each of the given connections and channels; for a
            :class:`amqpagent.transport.Message`, close the channel it was
            delivered on. Handles closed already by the peer are not an
            error. Any other type of argument raises TypeError, after the
            valid ones have been closed.
        """

        invalid = list()

        for thing in objects:
            if isinstance(thing, (Connection, Channel)):
                handle = thing
            elif isinstance(thing, Message) and thing.channel is not None:
                handle = thing.channel
            else:
                invalid.append(type(thing).__name__)
                continue

            try:
                handle.close()
            except TransportFailure as error:
                logger.debug('ignoring failure while closing %r: %s', handle, error)

        if invalid:
            raise TypeError('cannot shut down objects of type: ' + ', '.join(invalid))

        return True


    def connect(self):
        """ Open the default connection and channel, unless they are already
            present.
        """

        if self.connection is None:
            self.connection = self.new_connection()

        if self.channel is None:
            self.channel = self.new_channel()

        return self


    def disconnect(self):
        """ Close every channel and every connection opened by this worker.
        """

        if self.channels:
            self.shutdown(*self.channels)
            self.channel = None
            self.channels = list()

        if self.connections:
            self.shutdown(*self.connections)
            self.connection = None
            self.connections = list()

        return self


    def reconnect(self):

        self.disconnect()
        self.connect()
        return self


    def queue(self, parameters=None, channel=None):
        """ Declare the queue described by the queue options.
        """

        if channel is None:
            channel = self.channel

        with overridden(self, 'queue_options', parameters) as options:
            channel.queue_declare(**options)

        return self


    def new_connection(self, parameters=None):
        """ Open, remember, and return an additional connection.
        """

        with overridden(self, 'connection_options', parameters) as options:
            logger.debug('opening connection to %s:%s', options['host'], options['port'])
            connection = self.transport.connect(options)

        self.connections.append(connection)
        return connection


    def new_channel(self, parameters=None, connection=None):
        """ Open, remember, and return an additional channel on *connection*,
            or on the default connection. Returns None if there is no
            connection to open it on.
        """

        if connection is None:
            connection = self.connection

        if connection is None:
            return None

        with overridden(self, 'channel_options', parameters) as options:
            channel = connection.channel(options['channel_id'])

        self.channels.append(channel)
        return channel


    def channel_by_id(self, channel_id, connection=None):
        """ Return the open channel numbered *channel_id*, or None.
        """

        if connection is None:
            connection = self.connection

        for channel in connection.channels:
            if getattr(channel, 'channel_number', None) == channel_id:
                return channel

        return None


    make_command = staticmethod(command.make)
    is_command = staticmethod(command.is_command)
    has_command = staticmethod(command.has)
    get_command = staticmethod(command.get)


# end of class Worker


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
