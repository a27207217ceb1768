""" Exception classes shared by the RPC endpoints and the workers. The
    transport-level failures live in :mod:`amqpagent.transport.base`, and
    are re-exported from the top-level package for convenience.
"""


class AgentError(Exception):
    """ Base class for every exception raised by amqpagent.
    """


class ProtocolViolation(AgentError):
    """ An operation was invoked in the wrong lifecycle state (for example,
        a request issued before connecting, or connecting twice), or a
        contract was broken by user code, such as a server callback that
        did not return a string.
    """


class CorrelationMismatch(AgentError):
    """ A response arrived whose correlation id does not match the one
        outstanding request.
    """


class ReservedKeyError(ProtocolViolation):
    """ An application payload contains the reserved command key at the
        top level, and would be mistaken for a command by any recipient.
    """


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
