""" The responding side of an RPC exchange.
"""

import functools
import logging
import time

from .. import events
from ..errors import ProtocolViolation
from ..transport import Message
from .endpoint import Endpoint

logger = logging.getLogger(__name__)


class ServerEndpoint(Endpoint):
    """ Serves requests from a queue. Each request is handed to a callback
        whose return value, which must be a string, is published back to
        the requesting client with the same correlation id.
    """

    def __init__(self, *args, **kwargs):

        Endpoint.__init__(self, *args, **kwargs)
        self.responder = self.callback
        self.response_body = None
        self.correlation_id = None
        self.consumer_tag = None


    def respond(self, callback=None, queue_name=None):
        """ Consume requests from the request queue until consuming stops,
            either because :meth:`stop` was called or because the channel
            was closed. Each request is handed to *callback*, or to the
            :meth:`callback` method if none is given. Returns the body of
            the last request processed, None if there was none.

            The reply is published before the request is acknowledged: a
            failure in between leads to the request being delivered again,
            and processed again, even though a reply was already sent.
        """

        if not self.is_connected():
            raise ProtocolViolation('server is not connected')

        if callback is None:
            self.responder = self.callback
        else:
            self.responder = callback

        if queue_name:
            self.queue_name = queue_name

        self.request_queue = self.queue_name

        self.channel.queue_declare(self.request_queue)
        self.channel.basic_qos(prefetch_count=1)
        self.consumer_tag = self.channel.basic_consume(self.request_queue, self.on_request)

        logger.info('serving requests on %s', self.request_queue)

        while self.channel.is_consuming():
            self.channel.wait()

        logger.info('stopped serving requests on %s', self.request_queue)
        return self.request_body


    def serve(self, callback=None, queue_name=None):
        """ Alias for :meth:`respond`.
        """

        return self.respond(callback, queue_name)


    def on_request(self, message):

        self.trigger(events.Event.REQUEST_ON_GET, message)

        self.request_body = message.body
        body = self.responder(message)

        if not isinstance(body, str):
            raise ProtocolViolation('the server callback must return a string, got ' + type(body).__name__)

        self.response_body = body
        self.response_queue = message.reply_to
        self.correlation_id = message.correlation_id

        reply = Message(body)
        reply.set('correlation_id', self.correlation_id)
        reply.set('timestamp', int(time.time()))

        self.trigger(events.Event.RESPONSE_BEFORE_SEND, reply)
        message.channel.basic_publish(reply, exchange='', routing_key=self.response_queue)
        message.ack()
        self.trigger(events.Event.RESPONSE_AFTER_SEND, reply)

        logger.debug('replied to %s on %s', self.correlation_id, self.response_queue)


    def stop(self):
        """ Stop consuming requests, which makes :meth:`respond` return.
            Safe to call from inside the callback, and from other threads.
        """

        if self.consumer_tag is None or self.connection is None:
            return

        cancel = functools.partial(self.channel.basic_cancel, self.consumer_tag)
        self.connection.call_soon(cancel)


# end of class ServerEndpoint


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
