""" The authentication guard decides whether a decoded :class:`Envelope`
    is allowed to reach the command executor. A rejected envelope is dropped
    without any response; the sender never learns the outcome.
"""

import hmac
import logging

logger = logging.getLogger(__name__)


class AuthGuard:
    """ Accept envelopes according to the configured shared *token*. With
        no token configured every envelope is accepted, whatever it claims.
        With a token configured, the envelope must present exactly the same
        token, compared in constant time.
    """

    def __init__(self, token=None):

        if token == '':
            token = None

        self.token = token

        if token is None:
            self._expected = None
        else:
            self._expected = token.encode('utf-8')


    @property
    def enabled(self):
        return self._expected is not None


    def accept(self, envelope):
        """ Return True if *envelope* may be executed.
        """

        if self._expected is None:
            return True

        if envelope.auth is None:
            logger.debug('rejected envelope without auth token')
            return False

        presented = envelope.auth.encode('utf-8')

        if hmac.compare_digest(presented, self._expected):
            return True

        logger.debug('rejected envelope with mismatched auth token')
        return False


# end of class AuthGuard


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
