"""Transport interface.

This is the (small) contract that transport implementations should follow.
It lives outside :mod:`crier.protocol` so the protocol remains transport-agnostic:
a transport moves opaque envelope bytes and never decodes them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportTimeout(TransportError):
    """A connect, write or publish did not complete in time."""


class TransportConnectionError(TransportError):
    """The transport could not establish or maintain a connection."""


class BrokerUnreachable(TransportConnectionError):
    """The relay broker could not be reached within the connect timeout."""


class TransportPortError(TransportError):
    """No suitable port could be bound."""


class Transport(ABC):
    """Minimal contract for a wire-level transport."""

    shutdown = False

    def open(self) -> None:
        """Acquire anything that must exist before listening."""

    @abstractmethod
    def close(self) -> None:
        """Tear down; ends any active :meth:`listen` sequence."""

    @abstractmethod
    def send(self, payload: bytes) -> None:
        """Deliver one encoded envelope."""

    @abstractmethod
    def listen(self) -> Iterator[bytes]:
        """Yield raw envelope payloads until :meth:`close` is called."""

    @property
    def is_open(self) -> bool:
        """Whether the transport currently holds a live endpoint."""
        return False

    def describe(self) -> str:
        """Human-readable endpoint, for log messages."""
        return self.__class__.__name__
