""" A worker consuming messages from a queue, including the handling of
    command envelopes received alongside ordinary data.
"""

import functools
import logging

from .. import command
from .. import config
from .. import serializer
from ..errors import ProtocolViolation
from ..override import overridden
from .base import Worker

logger = logging.getLogger(__name__)


def _close_channel(data, message, consumer):
    consumer.shutdown(message)



class Consumer(Worker):
    """ Consumes from the queue. In addition to the arguments accepted by
        :class:`amqpagent.worker.Worker`, the *qos_options*, *wait_options*
        and *consume_options* are patched against the matching defaults in
        :mod:`amqpagent.config`.

        Unless a callback is passed to :meth:`consume`, each message goes to
        :meth:`dispatch`, which acknowledges it and runs the handlers
        registered with :meth:`on_command` for any command it carries. A
        'close' command shuts down the channel the message arrived on.
    """

    sections = Worker.sections + ('qos_options', 'wait_options', 'consume_options')

    def __init__(self, connection_options=None, channel_options=None, queue_options=None,
                 qos_options=None, wait_options=None, consume_options=None, transport=None):

        Worker.__init__(self, connection_options, channel_options, queue_options, transport)

        self.qos_options = config.patch(qos_options, config.QOS_OPTIONS)
        self.wait_options = config.patch(wait_options, config.WAIT_OPTIONS)
        self.consume_options = config.patch(consume_options, config.CONSUME_OPTIONS)

        self.handlers = dict()
        self.on_command('close', _close_channel)


    @staticmethod
    def ack(message, parameters=None):

        parameters = config.patch(parameters, config.ACK_OPTIONS)
        message.ack(multiple=parameters['multiple'])


    @staticmethod
    def nack(message, parameters=None, channel=None):

        parameters = config.patch(parameters, config.NACK_OPTIONS)

        if channel is None:
            message.nack(requeue=parameters['requeue'], multiple=parameters['multiple'])
        else:
            channel.basic_nack(message.delivery_tag, multiple=parameters['multiple'], requeue=parameters['requeue'])


    @staticmethod
    def reject(message, parameters=None, channel=None):

        parameters = config.patch(parameters, config.REJECT_OPTIONS)

        if channel is None:
            message.reject(requeue=parameters['requeue'])
        else:
            channel.basic_reject(message.delivery_tag, requeue=parameters['requeue'])


    @staticmethod
    def get(channel, parameters=None):
        """ Fetch a single message from the queue without consuming; None
            is returned if the queue is empty.
        """

        parameters = config.patch(parameters, config.GET_OPTIONS)
        return channel.basic_get(**parameters)


    @staticmethod
    def cancel(channel, parameters=None):

        parameters = config.patch(parameters, config.CANCEL_OPTIONS)
        channel.basic_cancel(**parameters)


    @staticmethod
    def recover(channel, parameters=None):

        parameters = config.patch(parameters, config.RECOVER_OPTIONS)
        channel.basic_recover(**parameters)


    def qos(self, parameters=None, channel=None):

        if channel is None:
            channel = self.channel

        with overridden(self, 'qos_options', parameters) as options:
            channel.basic_qos(**options)

        return self


    def consume(self, callback=None, arguments=None, parameters=None, channel=None):
        """ Start consuming from the queue. The *callback* receives each
            :class:`amqpagent.transport.Message`, followed by the elements
            of *arguments* if any are given. If *callback* is not specified
            the one in the consume options is used, and failing that,
            :meth:`dispatch`.
        """

        if channel is None:
            channel = self.channel

        with overridden(self, 'consume_options', parameters) as options:
            options = dict(options)

            if callback is None:
                callback = options['callback']
            if callback is None:
                callback = self.dispatch

            if not callable(callback):
                raise ProtocolViolation('the consume callback must be callable, got ' + repr(callback))

            if arguments:
                callback = functools.partial(_invoke, callback, tuple(arguments))

            options['callback'] = callback
            tag = channel.basic_consume(**options)

        logger.debug('consuming from %r as %r', options['queue'], tag)
        return self


    def is_consuming(self, channel=None):

        if channel is None:
            channel = self.channel

        return channel.is_consuming()


    def wait(self, parameters=None, channel=None):
        """ Process deliveries on the channel for as long as it consumes.
        """

        if channel is None:
            channel = self.channel

        with overridden(self, 'wait_options', parameters) as options:
            while channel.is_consuming():
                channel.wait(options['timeout'])

        return self


    def wait_for_all(self, parameters=None, connection=None):
        """ Process deliveries on every channel of the connection, giving
            each consuming channel a slice of the configured interval in
            turn, until none of them consumes any longer.
        """

        if connection is None:
            connection = self.connection

        with overridden(self, 'wait_options', parameters) as options:
            interval = options['interval']

            while True:
                active = [channel for channel in connection.channels if channel.is_consuming()]

                if not active:
                    break

                for channel in active:
                    if channel.is_consuming():
                        channel.wait(interval)

        return self


    def prepare(self):
        """ Connect, declare the queue and apply the quality of service
            options.
        """

        self.connect()
        self.queue()
        self.qos()
        return self


    def work(self, callback=None):
        """ Consume with *callback* until the channel stops consuming, then
            disconnect.
        """

        try:
            self.prepare()
            self.consume(callback)
            self.wait()
        finally:
            self.disconnect()


    def on_command(self, action, handler):
        """ Invoke *handler* for every command carrying *action* received by
            :meth:`dispatch`. The handler receives the decoded data, the
            message, and this consumer.
        """

        if not callable(handler):
            raise ProtocolViolation('the command handler must be callable, got ' + repr(handler))

        try:
            handlers = self.handlers[action]
        except KeyError:
            handlers = list()
            self.handlers[action] = handlers

        handlers.append(handler)
        return self


    def dispatch(self, message):
        """ Default consume callback: acknowledge the message, and if its
            body decodes to a command envelope run the handlers of every
            action present in it. Bodies that are not JSON are acknowledged
            and otherwise ignored. Returns the decoded data, or None.
        """

        data = serializer.loads(message.body, strict=False)

        self.ack(message)

        if not command.is_command(data):
            return data

        for action, handlers in tuple(self.handlers.items()):
            if command.has(data, action):
                logger.info('received %r command: %r', action, command.get(data, key=None))
                for handler in tuple(handlers):
                    handler(data, message, self)

        return data


# end of class Consumer



def _invoke(callback, arguments, message):
    return callback(message, *arguments)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
