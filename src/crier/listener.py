""" The :class:`Listener` pulls raw payloads from a transport, decodes each
    one into an :class:`crier.protocol.Envelope`, passes it through the
    :class:`crier.protocol.AuthGuard`, and hands accepted message text to an
    :class:`crier.execute.Executor`.

    The listener never stops on its own. Malformed payloads, rejected
    tokens, and failing commands are all absorbed; only an external
    :func:`Listener.stop`, an interrupt, or a fatal transport error at
    startup ends :func:`Listener.run`.
"""

import enum
import logging

from . import protocol

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    LISTENING = 'listening'
    DISPATCHING = 'dispatching'
    STOPPED = 'stopped'



class Listener:
    """ Bind a *transport* to an *executor*. The *guard* is an
        :class:`crier.protocol.AuthGuard`; if omitted, every well-formed
        envelope is accepted.

        Executor invocations happen one at a time in the thread that calls
        :func:`run`. Launching a command does not wait for it to finish, so
        one long-running command does not hold up the next message.
    """

    def __init__(self, transport, executor, guard=None, maximum=protocol.MAXIMUM_TEXT):

        if guard is None:
            guard = protocol.AuthGuard()

        self.transport = transport
        self.executor = executor
        self.guard = guard
        self.maximum = maximum
        self._state = State.IDLE

        self.received = 0
        self.executed = 0
        self.rejected = 0
        self.malformed = 0


    @property
    def state(self):
        """ The current :class:`State`. A transport that is still establishing
            its link, or re-establishing it after a loss, reports
            ``CONNECTING`` even though :func:`run` is already waiting on it.
        """

        state = self._state

        if state is State.LISTENING and not self.transport.is_open:
            return State.CONNECTING

        return state


    @state.setter
    def state(self, state):
        self._state = state


    def run(self):
        """ Listen until stopped. A :class:`crier.transport.TransportError`
            raised while acquiring the transport propagates to the caller;
            it is the only way for this method to fail.
        """

        self.state = State.CONNECTING

        try:
            self.transport.open()

            logger.info('Listening on %s', self.transport.describe())
            logger.info('Command: %s', self.executor.template)
            if self.guard.enabled:
                logger.info('Auth: enabled')

            self.state = State.LISTENING
            payloads = self.transport.listen()

            try:
                for payload in payloads:
                    self.dispatch(payload)
            finally:
                payloads.close()

        finally:
            self.state = State.STOPPED
            self.transport.close()


    def stop(self):
        """ Request that :func:`run` return. Safe to call from any thread.
        """

        self.transport.close()


    def dispatch(self, payload):
        """ Process a single raw *payload*. Returns True if the executor was
            invoked. Exceptions from decoding or from the executor are logged
            here and never propagate.
        """

        self.state = State.DISPATCHING
        self.received += 1

        try:
            return self._dispatch(payload)
        except Exception:
            logger.exception('unexpected failure handling a message')
            return False
        finally:
            if self._state is State.DISPATCHING:
                self.state = State.LISTENING


    def _dispatch(self, payload):

        try:
            envelope = protocol.unpack(payload, self.maximum)
        except protocol.MalformedEnvelope as e:
            self.malformed += 1
            logger.warning('dropped malformed message: %s', e)
            return False

        if not self.guard.accept(envelope):
            self.rejected += 1
            return False

        logger.info('Received: %s', envelope.text)
        self.executor.run(envelope.text)
        self.executed += 1
        return True


# end of class Listener


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
