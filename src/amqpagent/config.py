""" Default option sets for connections, channels, queues, exchanges and
    messages, and the handling of user-supplied configuration. The broker
    location and credentials can be set via the AMQPAGENT_HOST,
    AMQPAGENT_PORT, AMQPAGENT_USER, AMQPAGENT_PASSWORD and AMQPAGENT_VHOST
    environment variables; a JSON configuration file can be loaded with
    :func:`load`.
"""

import copy
import json
import os

from . import override


prefix = 'amqpagent.'

COMMAND_PREFIX = '__COMMAND__'

CONNECTION_OPTIONS = {
    'host': os.environ.get('AMQPAGENT_HOST', 'localhost'),
    'port': int(os.environ.get('AMQPAGENT_PORT', '5672')),
    'user': os.environ.get('AMQPAGENT_USER', 'guest'),
    'password': os.environ.get('AMQPAGENT_PASSWORD', 'guest'),
    'vhost': os.environ.get('AMQPAGENT_VHOST', '/'),
    'locale': 'en_US',
    'heartbeat': 60,
    'blocked_connection_timeout': 300,
    'connection_attempts': 1,
    'retry_delay': 2.0,
    'socket_timeout': 10.0,
}

CHANNEL_OPTIONS = {
    'channel_id': None,
}

QUEUE_OPTIONS = {
    'queue': prefix + 'queue',
    'passive': False,
    'durable': True,
    'exclusive': False,
    'auto_delete': False,
    'arguments': None,
}

EXCHANGE_OPTIONS = {
    'exchange': prefix + 'exchange',
    'exchange_type': 'direct',
    'passive': False,
    'durable': True,
    'auto_delete': False,
    'internal': False,
    'arguments': None,
}

BIND_OPTIONS = {
    'queue': prefix + 'queue',
    'exchange': prefix + 'exchange',
    'routing_key': prefix + 'routing',
    'arguments': None,
}

MESSAGE_OPTIONS = {
    'body': '{}',
    'properties': {
        'content_type': 'application/json',
        'content_encoding': 'utf-8',
        'delivery_mode': 2,
    },
}

PUBLISH_OPTIONS = {
    'exchange': prefix + 'exchange',
    'routing_key': prefix + 'routing',
    'mandatory': False,
}

QOS_OPTIONS = {
    'prefetch_size': 0,
    'prefetch_count': 5,
    'global_qos': False,
}

# The 'timeout' applies to each wait on a single channel, None blocks until
# something happens. The 'interval' is the time slice given to each channel
# when waiting on all the channels of a connection.

WAIT_OPTIONS = {
    'timeout': None,
    'interval': 0.1,
}

CONSUME_OPTIONS = {
    'queue': prefix + 'queue',
    'consumer_tag': prefix + 'consumer',
    'auto_ack': False,
    'exclusive': False,
    'callback': None,
    'arguments': None,
}

ACK_OPTIONS = {
    'multiple': False,
}

NACK_OPTIONS = {
    'multiple': False,
    'requeue': True,
}

GET_OPTIONS = {
    'queue': prefix + 'queue',
    'auto_ack': False,
}

CANCEL_OPTIONS = {
    'consumer_tag': prefix + 'consumer',
}

RECOVER_OPTIONS = {
    'requeue': True,
}

REJECT_OPTIONS = {
    'requeue': True,
}

RPC_CONNECTION_OPTIONS = dict(CONNECTION_OPTIONS)

RPC_QUEUE_NAME = prefix + 'rpc.queue'


# Configuration file sections, mapped to the defaults each one is patched
# against. The section names match the constructor arguments of the workers
# and endpoints.

sections = {
    'connection_options': CONNECTION_OPTIONS,
    'channel_options': CHANNEL_OPTIONS,
    'queue_options': QUEUE_OPTIONS,
    'exchange_options': EXCHANGE_OPTIONS,
    'bind_options': BIND_OPTIONS,
    'message_options': MESSAGE_OPTIONS,
    'publish_options': PUBLISH_OPTIONS,
    'qos_options': QOS_OPTIONS,
    'wait_options': WAIT_OPTIONS,
    'consume_options': CONSUME_OPTIONS,
    'queue_name': RPC_QUEUE_NAME,
}


def patch(options, defaults):
    """ Return a fresh copy of *defaults* with the known keys of *options*
        applied to it. Unknown keys are ignored.
    """

    defaults = copy.deepcopy(defaults)

    if not options:
        return defaults

    patched, _prior = override.apply(defaults, options)
    return patched


class Configuration(dict):
    """ A dictionary of configuration sections, each one already patched
        against the matching defaults. Sections that were not present in
        the loaded file are simply absent.
    """

    def select(self, *names):
        """ Return the subset of sections named in *names*, suitable for use
            as keyword arguments to a worker or endpoint constructor.
        """

        selected = dict()

        for name in names:
            try:
                selected[name] = self[name]
            except KeyError:
                pass

        return selected


def load(path=None):
    """ Load a JSON configuration file and return a :class:`Configuration`.
        If *path* is not specified the AMQPAGENT_CONFIG environment variable
        is consulted; if neither is set, an empty configuration is returned,
        which leaves every default in place.
    """

    if path is None:
        path = os.environ.get('AMQPAGENT_CONFIG')

    configuration = Configuration()

    if path is None:
        return configuration

    with open(path, 'r') as contents:
        loaded = json.load(contents)

    if not isinstance(loaded, dict):
        raise ValueError('configuration file must contain a JSON object: ' + str(path))

    for name, value in loaded.items():
        try:
            defaults = sections[name]
        except KeyError:
            raise ValueError('unknown configuration section: ' + repr(name))

        if isinstance(defaults, dict):
            if not isinstance(value, dict):
                raise ValueError('configuration section must be an object: ' + repr(name))
            value = patch(value, defaults)

        configuration[name] = value

    return configuration


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
