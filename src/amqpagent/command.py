""" Command envelopes: control signals that ride on the same queues, and in
    the same message format, as application data. A command is a decoded
    structured payload carrying the reserved :data:`prefix` key at the top
    level::

        {'__COMMAND__': {'close': 'channel', 'params': {'reason': 'idle'}}}

    Detection relies solely on the presence of that key, so application
    payloads must never use it; :func:`amqpagent.serializer.dumps` refuses
    to serialize such a payload unless it is explicitly marked as a command.
    These functions operate on decoded data: a payload that could not be
    decoded is never a command, and decoding errors are the caller's to
    handle.
"""

from . import config
from . import serializer


prefix = config.COMMAND_PREFIX

syntax = {
    prefix: {
        'ACTION': 'OBJECT',
        'PARAMS': {
            'NAME': 'VALUE',
        },
    },
}


def make(action, object, params=None, key='params'):
    """ Build a command envelope instructing *action* on *object*, with
        optional *params* stored under *key*. If either *action* or *object*
        is empty the returned envelope is tagged but empty, which recipients
        treat as no actionable command.
    """

    body = dict()

    if action and object:
        body[action] = object
        if params:
            body[key] = params

    return {prefix: body}


def encode(action, object, params=None, key='params'):
    """ Build a command with :func:`make` and serialize it, ready to be used
        as a message body.
    """

    command = make(action, object, params, key)
    return serializer.dumps(command, allow_command=True)


def is_command(data):
    """ Return True if *data* is a decoded mapping carrying the command key.
    """

    return isinstance(data, dict) and prefix in data


def has(data, action=None, object=None):
    """ Return True if *data* is a command and, when *action* is specified,
        that action is present in it. When *object* is also specified, the
        action's value must be exactly equal to it.
    """

    if not is_command(data):
        return False

    if action is None:
        return True

    body = data[prefix]

    try:
        value = body[action]
    except (KeyError, TypeError):
        return False

    if object is None:
        return True

    return value == object


def get(data, key='params', sub=None):
    """ Return the value stored under *key* in the command, or the value
        stored under *sub* nested inside it. If *key* is None the whole
        command body is returned. None is returned for any missing path,
        including when *data* is not a command at all.
    """

    if not is_command(data):
        return None

    result = data[prefix]

    for step in (key, sub):
        if step is None:
            break
        try:
            result = result[step]
        except (KeyError, IndexError, TypeError):
            return None

    return result


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
