import pytest

from amqpagent.transport import memory


@pytest.fixture
def broker():
    """ A clean in-process broker for each test. The endpoints and workers
        under test should be created with transport='memory'.
    """

    memory.broker.reset()
    yield memory.broker
    memory.broker.reset()


@pytest.fixture
def connection(broker):

    connection = memory.connect()
    yield connection
    connection.close()


@pytest.fixture
def channel(connection):
    return connection.channel()

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
