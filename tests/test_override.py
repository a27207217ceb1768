import copy
import pytest

from amqpagent import override


class Owner:

    def __init__(self):
        self.options = {'queue': 'q', 'durable': True, 'properties': {'delivery_mode': 2}}
        self.mutation = None


def test_apply_and_restore():

    current = {'queue': 'q', 'durable': True, 'arguments': None}
    original = copy.deepcopy(current)

    new, prior = override.apply(current, {'queue': 'other', 'arguments': {'x': 1}})

    assert new == {'queue': 'other', 'durable': True, 'arguments': {'x': 1}}
    assert prior == {'queue': 'q', 'arguments': None}
    assert current == original

    assert override.restore(new, prior) == original


def test_unknown_keys_are_ignored():

    current = {'queue': 'q'}
    new, prior = override.apply(current, {'unknownKey': 1})

    assert new == current
    assert prior == dict()


def test_extend_records_absent():

    current = {'queue': 'q'}
    new, prior = override.apply(current, {'priority': 5}, extend=True)

    assert new == {'queue': 'q', 'priority': 5}
    assert prior['priority'] is override.ABSENT

    restored = override.restore(new, prior)
    assert restored == {'queue': 'q'}
    assert 'priority' not in restored


def test_absent_removes_key():

    new, prior = override.apply({'queue': 'q', 'durable': True}, {'durable': override.ABSENT})

    assert new == {'queue': 'q'}
    assert override.restore(new, prior) == {'queue': 'q', 'durable': True}


def test_overridden_restores_on_success():

    owner = Owner()
    original = copy.deepcopy(owner.options)

    with override.overridden(owner, 'options', {'queue': 'transient', 'bogus': 1}) as options:
        assert options['queue'] == 'transient'
        assert 'bogus' not in options
        assert owner.options['queue'] == 'transient'

    assert owner.options == original
    assert owner.mutation.member == 'options'
    assert owner.mutation.prior == {'queue': 'q'}
    assert owner.mutation.applied == {'queue': 'transient'}


def test_overridden_restores_on_error():

    owner = Owner()
    original = copy.deepcopy(owner.options)

    with pytest.raises(RuntimeError):
        with override.overridden(owner, 'options', {'durable': False}):
            assert owner.options['durable'] == False
            raise RuntimeError('boom')

    assert owner.options == original


def test_overridden_sub_member():

    owner = Owner()
    original = copy.deepcopy(owner.options)

    overrides = {'delivery_mode': 1, 'priority': 9}

    with override.overridden(owner, 'options', overrides, sub='properties', extend=True) as options:
        assert options['properties'] == {'delivery_mode': 1, 'priority': 9}

    assert owner.options == original


def test_overridden_without_overrides():

    owner = Owner()

    with override.overridden(owner, 'options', None) as options:
        assert options is owner.options

    assert owner.mutation is None

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
