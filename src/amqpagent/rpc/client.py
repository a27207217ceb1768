""" The requesting side of an RPC exchange.
"""

import logging
import time
import uuid

from .. import events
from ..errors import CorrelationMismatch, ProtocolViolation
from ..transport import Message, TransportFailure, TransportTimeout
from .endpoint import Endpoint

logger = logging.getLogger(__name__)


class PendingRequest:
    """ The state of one outstanding request: the *correlation_id* sent
        with it, the *response_queue* the reply is expected on, and the
        response *body* once a matching reply arrived.
    """

    def __init__(self, correlation_id, response_queue):

        self.correlation_id = correlation_id
        self.response_queue = response_queue
        self.body = None
        self._done = False


    @property
    def done(self):
        return self._done


    def complete(self, body):

        self.body = body
        self._done = True


# end of class PendingRequest



class ClientEndpoint(Endpoint):
    """ Issues requests and blocks until the correlated response arrives.
        Only one request can be in flight per instance; the response is
        matched against the :class:`PendingRequest` created by that call.
        Requests given up on, for example after a timeout, are remembered by
        correlation id so that their late responses are discarded rather
        than mistaken for a mismatch.
    """

    def __init__(self, *args, **kwargs):

        Endpoint.__init__(self, *args, **kwargs)
        self.pending = None
        self.consumer_tag = None
        self.abandoned = set()


    def connect(self, connection_options=None):
        """ Connect, then declare the exclusive response queue for this
            client and start consuming from it.
        """

        Endpoint.connect(self, connection_options)
        self.abandoned = set()

        self.response_queue = self.channel.queue_declare('', exclusive=True, auto_delete=True)
        self.consumer_tag = self.channel.basic_consume(self.response_queue, self.on_response)

        logger.debug('client awaiting responses on %s', self.response_queue)
        return self


    def request(self, payload, queue_name=None, timeout=None):
        """ Send *payload*, either a string or a
            :class:`amqpagent.transport.Message`, to the request queue and
            return the body of the response. The *queue_name* replaces the
            request queue of this endpoint for this and any later request.

            With the default *timeout* of None this call blocks until the
            response arrives; otherwise
            :class:`amqpagent.transport.TransportTimeout` is raised once
            *timeout* seconds elapsed without one.
        """

        if not self.is_connected():
            raise ProtocolViolation('client is not connected')

        if self.pending is not None:
            raise ProtocolViolation('a request is already in flight: ' + self.pending.correlation_id)

        if queue_name:
            self.queue_name = queue_name

        self.request_queue = self.queue_name

        if isinstance(payload, Message):
            message = payload
        else:
            message = Message(str(payload))

        self.request_body = message.body

        pending = PendingRequest(uuid.uuid4().hex, self.response_queue)

        message.set('reply_to', pending.response_queue)
        message.set('correlation_id', pending.correlation_id)
        message.set('timestamp', int(time.time()))

        self.pending = pending
        sent = False

        try:
            self.channel.queue_declare(self.request_queue)

            self.trigger(events.Event.REQUEST_BEFORE_SEND, message)
            self.channel.basic_publish(message, exchange='', routing_key=self.request_queue)
            sent = True
            self.trigger(events.Event.REQUEST_AFTER_SEND, message)

            logger.debug('request %s sent to %s', pending.correlation_id, self.request_queue)
            self._await(pending, timeout)
        finally:
            self.pending = None
            if sent and pending.done == False:
                self.abandoned.add(pending.correlation_id)

        return pending.body


    def call(self, payload, queue_name=None, timeout=None):
        """ Alias for :meth:`request`.
        """

        return self.request(payload, queue_name, timeout)


    def _await(self, pending, timeout):

        if timeout is None:
            while pending.done == False:
                self._check_consuming()
                self.channel.wait()
            return

        deadline = time.monotonic() + timeout

        while pending.done == False:
            self._check_consuming()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransportTimeout('no response to request %s after %s seconds' % (pending.correlation_id, timeout))
            self.channel.wait(remaining)


    def _check_consuming(self):

        if not self.channel.is_consuming():
            raise TransportFailure('no longer consuming from response queue ' + str(self.response_queue))


    def on_response(self, message):
        """ Consumer callback for the response queue. A late response to a
            request that was given up on is acknowledged and discarded. Any
            other response whose correlation id does not match the
            outstanding request raises
            :class:`amqpagent.errors.CorrelationMismatch`, and is left
            unacknowledged.
        """

        self.trigger(events.Event.RESPONSE_ON_GET, message)

        pending = self.pending
        correlation_id = message.correlation_id

        if correlation_id in self.abandoned:
            self.abandoned.discard(correlation_id)
            logger.debug('discarding late response to abandoned request %s', correlation_id)
            message.ack()
            return

        if pending is None or correlation_id != pending.correlation_id:
            expected = None if pending is None else pending.correlation_id
            logger.error('correlation mismatch: got %r, expected %r', correlation_id, expected)
            raise CorrelationMismatch('response correlation id %r does not match %r' % (correlation_id, expected))

        pending.complete(self.callback(message))
        message.ack()


    @property
    def response_body(self):
        """ The response body of the request in flight; None until the
            matching response arrived, and when there is no request.
        """

        pending = self.pending
        if pending is None:
            return None

        return pending.body


# end of class ClientEndpoint


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
