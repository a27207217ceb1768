import threading
import pytest

from amqpagent import transport
from amqpagent.transport import Message, TransportFailure, memory


def test_get_transport(monkeypatch):

    assert transport.get('memory') is memory
    assert transport.resolve('memory') is memory
    assert transport.resolve(memory) is memory

    monkeypatch.setattr(transport, 'default', 'memory')
    assert transport.get() is memory

    with pytest.raises(ValueError):
        transport.get('carrier-pigeon')


def test_message_properties():

    message = Message('body', correlation_id='abc')

    assert message.correlation_id == 'abc'
    assert message.get('reply_to') is None

    message.set('reply_to', 'responses')
    assert message.reply_to == 'responses'

    message.set('reply_to', None)
    assert 'reply_to' not in message.properties

    with pytest.raises(ValueError):
        Message('body', bogus=1)

    with pytest.raises(ValueError):
        message.set('bogus', 1)

    # Not delivered by a broker, nothing to acknowledge.

    with pytest.raises(TransportFailure):
        message.ack()


def test_default_exchange(broker, channel):

    queue = channel.queue_declare('jobs')
    assert queue == 'jobs'

    channel.basic_publish(Message('one', correlation_id='1'), routing_key='jobs')

    message = channel.basic_get('jobs')
    assert message.body == 'one'
    assert message.correlation_id == '1'
    assert message.routing_key == 'jobs'
    assert message.redelivered == False

    message.ack()
    assert channel.basic_get('jobs') is None


def test_generated_queue_name(channel):

    first = channel.queue_declare('')
    second = channel.queue_declare('')

    assert first.startswith('amq.gen-')
    assert first != second


def test_exchange_routing(channel):

    for name in ('direct', 'fanout', 'topic', 'headers'):
        channel.exchange_declare('x.' + name, name)
        channel.queue_declare('q.' + name + '.1')
        channel.queue_declare('q.' + name + '.2')

    channel.queue_bind('q.direct.1', 'x.direct', 'red')
    channel.queue_bind('q.direct.2', 'x.direct', 'blue')
    channel.basic_publish(Message('d'), 'x.direct', 'red')

    assert channel.basic_get('q.direct.1', auto_ack=True).body == 'd'
    assert channel.basic_get('q.direct.2', auto_ack=True) is None

    channel.queue_bind('q.fanout.1', 'x.fanout')
    channel.queue_bind('q.fanout.2', 'x.fanout')
    channel.basic_publish(Message('f'), 'x.fanout', 'ignored')

    assert channel.basic_get('q.fanout.1', auto_ack=True).body == 'f'
    assert channel.basic_get('q.fanout.2', auto_ack=True).body == 'f'

    channel.queue_bind('q.topic.1', 'x.topic', 'jobs.*.urgent')
    channel.queue_bind('q.topic.2', 'x.topic', 'jobs.#')
    channel.basic_publish(Message('t1'), 'x.topic', 'jobs.build.urgent')
    channel.basic_publish(Message('t2'), 'x.topic', 'jobs.build.later.maybe')

    assert channel.basic_get('q.topic.1', auto_ack=True).body == 't1'
    assert channel.basic_get('q.topic.1', auto_ack=True) is None
    assert channel.basic_get('q.topic.2', auto_ack=True).body == 't1'
    assert channel.basic_get('q.topic.2', auto_ack=True).body == 't2'

    channel.queue_bind('q.headers.1', 'x.headers', '', {'x-match': 'all', 'kind': 'a', 'size': 1})
    channel.queue_bind('q.headers.2', 'x.headers', '', {'x-match': 'any', 'kind': 'a', 'size': 1})
    channel.basic_publish(Message('h', headers={'kind': 'a', 'size': 2}), 'x.headers')

    assert channel.basic_get('q.headers.1', auto_ack=True) is None
    assert channel.basic_get('q.headers.2', auto_ack=True).body == 'h'


def test_unknown_exchange(channel):

    with pytest.raises(TransportFailure):
        channel.basic_publish(Message('lost'), 'no.such.exchange', 'key')

    with pytest.raises(TransportFailure):
        channel.exchange_declare('amq.direct', 'fanout')


def test_exclusive_queue(broker, connection, channel):

    channel.queue_declare('private', exclusive=True)

    other = memory.connect()
    other_channel = other.channel()

    with pytest.raises(TransportFailure):
        other_channel.queue_declare('private')

    connection.close()
    assert 'private' not in broker.queues

    other.close()


def test_consume_and_wait(channel):

    channel.queue_declare('jobs')
    received = list()

    tag = channel.basic_consume('jobs', lambda message: received.append(message.body), auto_ack=True)
    assert channel.is_consuming()

    channel.basic_publish(Message('one'), routing_key='jobs')
    channel.basic_publish(Message('two'), routing_key='jobs')

    channel.wait(1)
    channel.wait(1)
    assert received == ['one', 'two']

    # Nothing pending: the wait times out.

    channel.wait(0.01)
    assert received == ['one', 'two']

    channel.basic_cancel(tag)
    assert channel.is_consuming() == False

    # Not consuming: the wait returns immediately.

    channel.wait()


def test_prefetch(channel):

    channel.queue_declare('jobs')
    channel.basic_qos(prefetch_count=1)

    held = list()
    channel.basic_consume('jobs', held.append)

    channel.basic_publish(Message('one'), routing_key='jobs')
    channel.basic_publish(Message('two'), routing_key='jobs')

    channel.wait(1)
    assert [message.body for message in held] == ['one']

    # The second message is held back until the first is acknowledged.

    channel.wait(0.01)
    assert len(held) == 1

    held[0].ack()
    channel.wait(1)
    assert [message.body for message in held] == ['one', 'two']


def test_nack_requeue(channel):

    channel.queue_declare('jobs')
    channel.basic_publish(Message('one'), routing_key='jobs')

    message = channel.basic_get('jobs')
    message.nack(requeue=True)

    again = channel.basic_get('jobs')
    assert again.body == 'one'
    assert again.redelivered == True

    again.reject(requeue=False)
    assert channel.basic_get('jobs') is None


def test_recover(channel):

    channel.queue_declare('jobs')
    channel.basic_publish(Message('one'), routing_key='jobs')

    channel.basic_get('jobs')
    assert channel.basic_get('jobs') is None

    channel.basic_recover()
    assert channel.basic_get('jobs').redelivered == True


def test_unknown_delivery_tag(channel):

    with pytest.raises(TransportFailure):
        channel.basic_ack(42)


def test_close_requeues(connection, channel):

    channel.queue_declare('jobs')
    channel.basic_publish(Message('one'), routing_key='jobs')
    channel.basic_get('jobs')

    channel.close()
    channel.close()
    assert channel.is_open == False

    with pytest.raises(TransportFailure):
        channel.wait()

    with pytest.raises(TransportFailure):
        channel.basic_publish(Message('two'), routing_key='jobs')

    fresh = connection.channel()
    assert fresh.basic_get('jobs').body == 'one'
    assert connection.channels == [fresh]


def test_auto_delete(broker, channel):

    channel.queue_declare('transient', auto_delete=True)
    tag = channel.basic_consume('transient', print)

    channel.basic_cancel(tag)
    assert 'transient' not in broker.queues


def test_wait_across_threads(connection, channel):

    channel.queue_declare('jobs')
    received = list()
    channel.basic_consume('jobs', lambda message: received.append(message.body), auto_ack=True)

    def publish():
        publisher = memory.connect()
        publisher.channel().basic_publish(Message('hello'), routing_key='jobs')
        publisher.close()

    thread = threading.Thread(target=publish)
    thread.start()

    while not received:
        channel.wait(5)

    thread.join()
    assert received == ['hello']


def test_call_soon(connection, channel):

    channel.queue_declare('jobs')
    tag = channel.basic_consume('jobs', print)

    connection.call_soon(lambda: channel.basic_cancel(tag))
    assert channel.is_consuming() == False

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
