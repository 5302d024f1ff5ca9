"""
crier Protocol Layer
====================

Wire-level semantics shared by every transport: the :class:`Envelope`
and its byte encoding, and the :class:`AuthGuard` that filters decoded
envelopes before anything is executed.

The protocol layer MUST NOT depend on any transport implementation.

---------------------------------------------------------------------

Layer Architecture Overview
---------------------------

Sender / Listener (sender.py, listener.py)
    │
    ▼
Auth Guard (auth.py)
    Accept or silently drop an Envelope

    │
    ▼
Envelope (envelope.py)
    [auth_len:u16][auth][text_len:u32][text]
    pack(), unpack(), frame_length()

    │
    ▼
Transport Layer (crier.transport)
    Moves bytes
    - direct (raw TCP)
    - relay (MQTT broker)

---------------------------------------------------------------------
"""

from . import auth
from . import envelope

from .auth import AuthGuard
from .envelope import (
    Envelope,
    IncompleteFrame,
    MalformedEnvelope,
    MAXIMUM_TEXT,
    pack,
    unpack,
)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
