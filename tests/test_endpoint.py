import pytest

from amqpagent import ClientEndpoint, Event, ServerEndpoint
from amqpagent.errors import ProtocolViolation
from amqpagent.rpc import Endpoint


def test_connect_and_disconnect(broker):

    endpoint = Endpoint(transport='memory')
    assert endpoint.is_connected() == False

    endpoint.connect()
    assert endpoint.is_connected()
    assert len(broker.connections) == 1

    endpoint.disconnect()
    assert endpoint.is_connected() == False
    assert endpoint.connection is None
    assert len(broker.connections) == 0

    # Disconnecting twice is harmless.

    endpoint.disconnect()


def test_double_connect(broker):

    endpoint = Endpoint(transport='memory')
    endpoint.connect()

    with pytest.raises(ProtocolViolation):
        endpoint.connect()

    endpoint.disconnect()
    endpoint.connect()
    endpoint.disconnect()


def test_connection_options_persist(broker):

    endpoint = Endpoint({'host': 'first.example.com'}, transport='memory')
    assert endpoint.connection_options['host'] == 'first.example.com'

    endpoint.connect({'host': 'second.example.com', 'bogus': 1})
    endpoint.disconnect()

    assert endpoint.connection_options['host'] == 'second.example.com'
    assert 'bogus' not in endpoint.connection_options


def test_connected_follows_transport(broker):

    endpoint = Endpoint(transport='memory')
    endpoint.connect()

    # Closed underneath the endpoint, for example by the peer.

    endpoint.connection.close()
    assert endpoint.is_connected() == False

    endpoint.connect()
    assert endpoint.is_connected()
    endpoint.disconnect()


def test_lifecycle_events(broker):

    endpoint = Endpoint(transport='memory')
    fired = list()

    def record(subject, source, event):
        assert source is endpoint
        fired.append((event, subject))

    for event in (Event.CONNECTION_AFTER_OPEN, Event.CHANNEL_AFTER_OPEN,
                  Event.CHANNEL_BEFORE_CLOSE, Event.CONNECTION_BEFORE_CLOSE):
        assert endpoint.on(event, record) is endpoint

    endpoint.connect()
    connection = endpoint.connection
    channel = endpoint.channel
    endpoint.disconnect()

    assert fired == [
        (Event.CONNECTION_AFTER_OPEN, connection),
        (Event.CHANNEL_AFTER_OPEN, channel),
        (Event.CHANNEL_BEFORE_CLOSE, channel),
        (Event.CONNECTION_BEFORE_CLOSE, connection),
    ]


def test_on_unknown_event():

    endpoint = Endpoint(transport='memory')

    with pytest.raises(ValueError):
        endpoint.on('connection.opened', print)


def test_context_manager(broker):

    with ServerEndpoint(transport='memory') as server:
        assert server.is_connected()

    assert server.is_connected() == False
    assert len(broker.connections) == 0


def test_ping_disconnected(broker):

    endpoint = Endpoint(transport='memory')
    elapsed = endpoint.ping()

    assert isinstance(elapsed, float)
    assert elapsed >= 0.0
    assert round(elapsed, 2) == elapsed

    # The probe connection is gone, and so is the probe queue.

    assert len(broker.connections) == 0
    assert len(broker.queues) == 0
    assert endpoint.is_connected() == False


def test_ping_connected(broker):

    client = ClientEndpoint(transport='memory')
    client.connect()

    queues = set(broker.queues)

    elapsed = client.ping()
    assert elapsed >= 0.0

    # The live connection is reused and left open.

    assert len(broker.connections) == 1
    assert set(broker.queues) == queues
    assert client.is_connected()

    client.disconnect()

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
