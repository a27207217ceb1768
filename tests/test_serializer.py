import pytest

from amqpagent import serializer
from amqpagent.errors import ProtocolViolation, ReservedKeyError


def test_dumps_is_compact():

    assert serializer.dumps({'a': [1, 2]}) == '{"a":[1,2]}'
    assert serializer.dumps('text') == '"text"'


def test_dumps_reserved_key():

    with pytest.raises(ReservedKeyError):
        serializer.dumps({'__COMMAND__': {}, 'data': 1})

    # A reserved key error is a protocol violation like any other.

    with pytest.raises(ProtocolViolation):
        serializer.dumps({'__COMMAND__': {}})

    encoded = serializer.dumps({'__COMMAND__': {}}, allow_command=True)
    assert serializer.loads(encoded) == {'__COMMAND__': {}}

    # Only the top level is reserved.

    nested = {'data': {'__COMMAND__': 1}}
    assert serializer.loads(serializer.dumps(nested)) == nested


def test_loads():

    assert serializer.loads('{"a":1}') == {'a': 1}
    assert serializer.loads(b'{"a":1}') == {'a': 1}
    assert serializer.loads('[1, 2]') == [1, 2]


def test_loads_strict():

    with pytest.raises(ValueError):
        serializer.loads('not json')

    with pytest.raises(ValueError):
        serializer.loads(b'\xff\xfe')


def test_loads_lenient():

    assert serializer.loads('not json', strict=False) is None
    assert serializer.loads(b'\xff\xfe', strict=False) is None
    assert serializer.loads(None, strict=False) is None

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
