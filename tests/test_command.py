import pytest

from amqpagent import command
from amqpagent import serializer
from amqpagent.errors import ReservedKeyError


def test_make():

    made = command.make('start', 'worker')
    assert made == {'__COMMAND__': {'start': 'worker'}}

    made = command.make('close', 'channel', {'reason': 'idle'})
    assert made == {'__COMMAND__': {'close': 'channel', 'params': {'reason': 'idle'}}}

    made = command.make('close', 'channel', {'reason': 'idle'}, key='args')
    assert made['__COMMAND__']['args'] == {'reason': 'idle'}


def test_make_empty():

    assert command.make('', 'worker') == {'__COMMAND__': {}}
    assert command.make('start', '') == {'__COMMAND__': {}}

    # Still tagged, but nothing to act on.

    empty = command.make('', '')
    assert command.is_command(empty)
    assert command.has(empty, 'start') == False


def test_is_command():

    assert command.is_command(command.make('start', 'worker'))
    assert command.is_command({'foo': 'bar'}) == False
    assert command.is_command('plain string') == False
    assert command.is_command('__COMMAND__') == False
    assert command.is_command(None) == False
    assert command.is_command(['__COMMAND__']) == False


def test_has():

    made = command.make('start', 'worker')

    assert command.has(made)
    assert command.has(made, 'start')
    assert command.has(made, 'start', 'worker')
    assert command.has(made, 'start', 'other') == False
    assert command.has(made, 'start', 'Worker') == False
    assert command.has(made, 'stop') == False
    assert command.has({'foo': 'bar'}, 'start') == False


def test_get():

    made = command.make('a', 'b', {'x': 1})

    assert command.get(made, 'params', 'x') == 1
    assert command.get(made) == {'x': 1}
    assert command.get(made, key=None) == {'a': 'b', 'params': {'x': 1}}
    assert command.get(made, 'params', 'y') is None
    assert command.get(made, 'missing') is None
    assert command.get(made, 'a', 'x') is None
    assert command.get({'foo': 'bar'}) is None


def test_encode():

    encoded = command.encode('close', 'channel')
    assert command.has(serializer.loads(encoded), 'close', 'channel')


def test_reserved_key_refused():

    with pytest.raises(ReservedKeyError):
        serializer.dumps(command.make('close', 'channel'))

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
