"""Direct point-to-point transport over raw TCP.

The listening side is a ZeroMQ STREAM socket: every accepted TCP connection
shows up as a routing identity, with a zero-length message when the peer
connects and another when it goes away. All connections are multiplexed by
the ZeroMQ I/O thread, so a slow peer never holds up any other peer.

The sending side is a plain TCP socket; a sender writes exactly one frame
and closes.
"""

from __future__ import annotations

import atexit
import collections
import logging
import socket
import time
from typing import Dict, Iterator, Optional, Tuple

import zmq

from ..protocol.envelope import MAXIMUM_TEXT, IncompleteFrame, MalformedEnvelope
from .base import Transport, TransportConnectionError, TransportPortError, TransportTimeout
from .session import Session

logger = logging.getLogger(__name__)

zmq_context = zmq.Context()


def parse_address(address: str) -> Tuple[str, int]:
    """Split ``host:port`` (or ``[v6host]:port``) into its parts."""

    host, sep, port = str(address).rpartition(":")
    if not sep or not host:
        raise ValueError(f"expected host:port, got {address!r}")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        port = int(port)
    except ValueError:
        raise ValueError(f"invalid port in address {address!r}") from None

    if port < 0 or port > 65535:
        raise ValueError(f"port out of range in address {address!r}")

    return host, port


def _peer_address(frame) -> Optional[str]:
    try:
        return frame.get("Peer-Address")
    except zmq.ZMQError:
        return None


class Direct(Transport):
    """Raw TCP transport for one ``host:port`` address."""

    poll_interval = 0.1
    maximum_sessions = 1024
    idle_timeout = 30.0
    remembered = 4096

    def __init__(self, address: str, timeout: float = 5.0, maximum: int = MAXIMUM_TEXT):
        self.address = address
        self.host, self.port = parse_address(address)
        self.timeout = timeout
        self.maximum = maximum

        self.socket = None
        self.shutdown = False
        self._listening = False
        self._sessions: Dict[bytes, Session] = {}

        # Identities we already hung up on; a late disconnect notice for one
        # of these must not be mistaken for a new connection.
        self._finished: collections.OrderedDict = collections.OrderedDict()

    # --- listening side ---

    def open(self) -> None:
        if self.socket is not None or self.shutdown:
            return

        sock = zmq_context.socket(zmq.STREAM)
        sock.setsockopt(zmq.LINGER, 0)

        host = self.host
        if ":" in host:
            sock.setsockopt(zmq.IPV6, 1)
            host = f"[{host}]"

        port = "*" if self.port == 0 else str(self.port)

        try:
            sock.bind(f"tcp://{host}:{port}")
        except zmq.ZMQError as exc:
            sock.close()
            raise TransportPortError(f"cannot bind {self.address}: {exc}") from exc

        endpoint = sock.getsockopt_string(zmq.LAST_ENDPOINT)
        self.port = int(endpoint.rsplit(":", 1)[1])
        self.socket = sock

    @property
    def is_open(self) -> bool:
        return self.socket is not None

    def describe(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"tcp://{host}:{self.port}"

    def listen(self) -> Iterator[bytes]:
        self.open()
        if self.socket is None:
            return

        self._listening = True

        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        timeout = int(self.poll_interval * 1000)

        try:
            while not self.shutdown:
                self._expire()

                if not poller.poll(timeout):
                    continue

                while not self.shutdown:
                    try:
                        frames = self.socket.recv_multipart(zmq.NOBLOCK, copy=False)
                    except zmq.Again:
                        break

                    payload = self._receive(frames)
                    if payload is not None:
                        yield payload
        finally:
            self._listening = False
            self._teardown()

    def _receive(self, frames) -> Optional[bytes]:
        """Route one (identity, data) pair to its session."""

        ident = frames[0].bytes
        chunk = frames[1].bytes
        session = self._sessions.get(ident)

        if not chunk:
            if session is not None:
                self._disconnected(ident, session)
            elif ident in self._finished:
                del self._finished[ident]
            else:
                self._accept(ident)
            return None

        if session is None:
            if ident in self._finished:
                return None
            session = self._accept(ident)
            if session is None:
                return None

        if session.peer is None:
            session.peer = _peer_address(frames[1])

        try:
            frame = session.feed(chunk)
        except MalformedEnvelope as e:
            logger.warning("[%s] dropped: %s", session.peer, e)
            self._finish(ident)
            return None

        if frame is None:
            return None

        logger.debug("[%s] received %d byte frame", session.peer, len(frame))
        self._finish(ident)
        return frame

    def _accept(self, ident: bytes) -> Optional[Session]:
        if len(self._sessions) >= self.maximum_sessions:
            logger.warning("refusing connection: %d sessions already open", len(self._sessions))
            self._hangup(ident)
            self._remember(ident)
            return None

        session = Session(maximum=self.maximum)
        self._sessions[ident] = session
        return session

    def _expire(self) -> None:
        """Hang up on sessions that have been silent too long."""

        if not self._sessions:
            return

        cutoff = time.monotonic() - self.idle_timeout
        stale = [ident for ident, session in self._sessions.items() if session.touched < cutoff]

        for ident in stale:
            session = self._sessions[ident]
            logger.warning("[%s] dropped: idle for more than %.1f s", session.peer, self.idle_timeout)
            self._finish(ident)

    def _disconnected(self, ident: bytes, session: Session) -> None:
        del self._sessions[ident]

        try:
            session.closed()
        except IncompleteFrame as e:
            if session.buffer:
                logger.warning("[%s] dropped: %s", session.peer, e)
            else:
                logger.debug("[%s] closed without sending anything", session.peer)

    def _finish(self, ident: bytes) -> None:
        self._sessions.pop(ident, None)
        self._hangup(ident)
        self._remember(ident)

    def _remember(self, ident: bytes) -> None:
        self._finished[ident] = None
        while len(self._finished) > self.remembered:
            self._finished.popitem(last=False)

    def _hangup(self, ident: bytes) -> None:
        # A zero-length message to an identity closes that TCP connection.
        try:
            self.socket.send_multipart((ident, b""), zmq.NOBLOCK)
        except zmq.ZMQError as e:
            logger.debug("hangup failed: %s", e)

    def _teardown(self) -> None:
        sock = self.socket
        self.socket = None
        self._sessions.clear()
        self._finished.clear()
        if sock is not None:
            sock.close()

    def close(self) -> None:
        self.shutdown = True
        if not self._listening:
            self._teardown()

    # --- sending side ---

    def send(self, payload: bytes) -> None:
        target = (self.host, self.port)

        try:
            sock = socket.create_connection(target, timeout=self.timeout)
        except (TimeoutError, socket.timeout) as exc:
            raise TransportTimeout(f"connect to {self.address} timed out") from exc
        except OSError as exc:
            raise TransportConnectionError(f"cannot connect to {self.address}: {exc}") from exc

        with sock:
            try:
                sock.sendall(payload)
                sock.shutdown(socket.SHUT_WR)
            except (TimeoutError, socket.timeout) as exc:
                raise TransportTimeout(f"write to {self.address} timed out") from exc
            except OSError as exc:
                raise TransportConnectionError(f"write to {self.address} failed: {exc}") from exc


def _cleanup() -> None:
    # Sockets still held by daemon threads would make term() block forever.
    zmq_context.destroy(linger=0)


atexit.register(_cleanup)
