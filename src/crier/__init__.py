""" Python implementation of crier, a simple push notification tool. A
    listener waits for short text messages and runs a locally configured
    command for each one; a sender delivers a message and exits. Messages
    travel either directly over TCP, or through an MQTT broker when the
    listener cannot accept inbound connections.
"""

__version__ = '0.1.0'

# Submodules used by multiple other components.

from . import protocol
from . import transport
from . import config

# Primary public-facing interfaces.

from .config import RunConfig, DirectMode, RelayMode
from .execute import Executor, substitute
from .listener import Listener, State
from .protocol import AuthGuard, Envelope
from .sender import Outcome, Sender

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
