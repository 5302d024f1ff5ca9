"""Transport layer implementations."""

from .base import (
    BrokerUnreachable,
    Transport,
    TransportError,
    TransportTimeout,
    TransportConnectionError,
    TransportPortError,
)

from .direct import Direct
from .relay import Relay


def for_mode(mode, timeout=None):
    """ Return a new :class:`Transport` for a resolved *mode*, either a
        :class:`crier.config.DirectMode` or :class:`crier.config.RelayMode`.
    """

    kwargs = dict()
    if timeout is not None:
        kwargs['timeout'] = timeout

    kind = mode.kind

    if kind == 'direct':
        return Direct(mode.address, **kwargs)
    elif kind == 'relay':
        return Relay(mode.topic, host=mode.host, port=mode.port, **kwargs)
    else:
        raise ValueError('unknown transport mode: ' + repr(kind))
