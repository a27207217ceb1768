""" A worker publishing messages to an exchange.
"""

import logging

from .. import command
from .. import config
from .. import serializer
from ..errors import ProtocolViolation
from ..override import overridden
from ..transport import Message
from .base import Worker

logger = logging.getLogger(__name__)


class Publisher(Worker):
    """ Declares an exchange, binds the queue to it, and publishes to it.
        In addition to the arguments accepted by
        :class:`amqpagent.worker.Worker`, the *exchange_options*,
        *bind_options*, *message_options* and *publish_options* are patched
        against the matching defaults in :mod:`amqpagent.config`.
    """

    sections = Worker.sections + ('exchange_options', 'bind_options', 'message_options', 'publish_options')

    def __init__(self, connection_options=None, channel_options=None, queue_options=None,
                 exchange_options=None, bind_options=None, message_options=None,
                 publish_options=None, transport=None):

        Worker.__init__(self, connection_options, channel_options, queue_options, transport)

        self.exchange_options = config.patch(exchange_options, config.EXCHANGE_OPTIONS)
        self.bind_options = config.patch(bind_options, config.BIND_OPTIONS)
        self.message_options = config.patch(message_options, config.MESSAGE_OPTIONS)
        self.publish_options = config.patch(publish_options, config.PUBLISH_OPTIONS)


    def exchange(self, parameters=None, channel=None):

        if channel is None:
            channel = self.channel

        with overridden(self, 'exchange_options', parameters) as options:
            channel.exchange_declare(**options)

        return self


    def bind(self, parameters=None, channel=None):

        if channel is None:
            channel = self.channel

        with overridden(self, 'bind_options', parameters) as options:
            channel.queue_bind(**options)

        return self


    def message(self, body, properties=None):
        """ Return a new :class:`amqpagent.transport.Message` with the given
            *body*, or the default body if *body* is empty. The *properties*
            are applied on top of the default message properties for this
            message only; unlike other overrides they can introduce
            properties absent from the defaults.
        """

        with overridden(self, 'message_options', properties, sub='properties', extend=True) as options:
            message = Message(body or options['body'], **options['properties'])

        return message


    def publish(self, payload, parameters=None, channel=None):
        """ Publish *payload*, which can be a string, a
            :class:`amqpagent.transport.Message`, a dictionary with 'body'
            and 'properties' keys, or any other structure that can be
            serialized to JSON. Structured payloads may not use the reserved
            command key; use :meth:`publish_command` to send a command.
        """

        if channel is None:
            channel = self.channel

        message = self._build(payload)

        with overridden(self, 'publish_options', parameters) as options:
            channel.basic_publish(message, **options)
            logger.debug('published to %r with routing key %r', options['exchange'], options['routing_key'])

        return self


    def _build(self, payload):

        if isinstance(payload, Message):
            return payload

        if isinstance(payload, str):
            return self.message(payload)

        if isinstance(payload, dict) and 'body' in payload and 'properties' in payload:
            return self.message(payload['body'], payload['properties'])

        if isinstance(payload, (dict, list, tuple, int, float)) and not isinstance(payload, bool):
            return self.message(serializer.dumps(payload))

        raise ProtocolViolation('cannot publish a payload of type ' + type(payload).__name__)


    def publish_command(self, action, object, params=None, parameters=None, channel=None):
        """ Publish a command envelope instructing *action* on *object*,
            see :func:`amqpagent.command.make`.
        """

        body = command.encode(action, object, params)
        return self.publish(self.message(body), parameters, channel)


    def publish_batch(self, messages, batch_size=2500, exchange=None, channel=None):
        """ Publish a sequence of :class:`amqpagent.transport.Message`
            instances to *exchange*, or to the default exchange of this
            publisher. Any other element raises
            :class:`amqpagent.errors.ProtocolViolation` before anything is
            published.
        """

        if channel is None:
            channel = self.channel

        if exchange is None:
            exchange = self.publish_options['exchange']

        messages = list(messages)

        for index, message in enumerate(messages):
            if not isinstance(message, Message):
                raise ProtocolViolation('batch element %d is a %s, not a Message' % (index, type(message).__name__))

        routing_key = self.publish_options['routing_key']

        for start in range(0, len(messages), batch_size):
            batch = messages[start:start + batch_size]
            for message in batch:
                channel.basic_publish(message, exchange=exchange, routing_key=routing_key)
            logger.debug('published batch of %d message(s) to %r', len(batch), exchange)

        return self


    def prepare(self):
        """ Connect, then declare the queue and the exchange and bind them.
        """

        self.connect()
        self.queue()
        self.exchange()
        self.bind()
        return self


    def work(self, messages):
        """ Publish every element of *messages*, then disconnect.
        """

        self.prepare()

        try:
            for message in messages:
                self.publish(message)
        finally:
            self.disconnect()

        return True


# end of class Publisher


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
