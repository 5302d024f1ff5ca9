""" The sending half: wrap one message in an envelope, push it through a
    transport, and report what happened. There is no reply from the far
    end; DELIVERED means the transport accepted the bytes (TCP write
    completed, or the broker acknowledged the publish), not that any
    command ran.
"""

import enum
import logging

from . import protocol
from . import transport

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    DELIVERED = 0
    FAILED = 1
    TIMEOUT = 3

    @property
    def exit_code(self):
        return self.value



class Sender:
    """ Deliver messages over *transport*, presenting *auth* (if any) as the
        shared token.
    """

    def __init__(self, transport, auth=None, maximum=protocol.MAXIMUM_TEXT):
        self.transport = transport
        self.auth = auth
        self.maximum = maximum


    def send(self, text):
        """ Send *text* once and return an :class:`Outcome`. Transport errors
            are logged and folded into the outcome; nothing is retried.
        """

        try:
            envelope = protocol.Envelope(text, self.auth)
            payload = protocol.pack(envelope, self.maximum)
        except protocol.MalformedEnvelope as e:
            logger.error('Cannot send: %s', e)
            return Outcome.FAILED

        target = self.transport.describe()

        try:
            self.transport.send(payload)
        except transport.TransportTimeout as e:
            logger.error('Timed out sending to %s: %s', target, e)
            return Outcome.TIMEOUT
        except transport.TransportError as e:
            logger.error('Failed to send to %s: %s', target, e)
            return Outcome.FAILED

        logger.info('Sent: %s', text)
        return Outcome.DELIVERED


# end of class Sender


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
