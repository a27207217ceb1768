""" JSON encoding for message bodies. This is the boundary where
    application payloads are checked against the reserved command key; see
    :mod:`amqpagent.command`.
"""

import json

from . import config
from .errors import ReservedKeyError


def dumps(data, allow_command=False):
    """ Serialize *data* to a JSON string. A top-level mapping carrying the
        reserved command key is refused with
        :class:`amqpagent.errors.ReservedKeyError`, unless *allow_command*
        is True.
    """

    if allow_command == False and isinstance(data, dict):
        if config.COMMAND_PREFIX in data:
            raise ReservedKeyError('application payloads may not use the reserved key ' + repr(config.COMMAND_PREFIX))

    return json.dumps(data, separators=(',', ':'))


def loads(text, strict=True):
    """ Deserialize a JSON string or bytes. If *strict* is False, input that
        cannot be decoded returns None instead of raising ValueError; this
        is useful when a body may just as well be plain text.
    """

    try:
        text.decode
    except AttributeError:
        pass
    else:
        try:
            text = text.decode('utf-8')
        except UnicodeDecodeError:
            if strict:
                raise
            return None

    try:
        return json.loads(text)
    except (TypeError, ValueError):
        if strict:
            raise
        return None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
