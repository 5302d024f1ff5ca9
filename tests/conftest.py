import socket
import struct
import threading
import time

import pytest

import crier


CONNECT = 1
PUBLISH = 3
PUBACK = 4
SUBSCRIBE = 8
UNSUBSCRIBE = 10
PINGREQ = 12
DISCONNECT = 14


def _recv_exactly(conn, count):

    data = b''
    while len(data) < count:
        chunk = conn.recv(count - len(data))
        if chunk == b'':
            return None
        data += chunk

    return data


def _encode_length(length):

    encoded = bytearray()
    while True:
        byte = length % 128
        length = length // 128
        if length > 0:
            byte |= 0x80
        encoded.append(byte)
        if length == 0:
            return bytes(encoded)


def _packet(header, body=b''):
    return bytes((header,)) + _encode_length(len(body)) + body


def _string(value):
    value = value.encode('utf-8')
    return struct.pack('!H', len(value)) + value


class StubBroker:
    """ Just enough of an MQTT 3.1.1 broker to exercise the relay transport:
        CONNECT, SUBSCRIBE, PUBLISH at QoS 0/1, PINGREQ and DISCONNECT, with
        exact-match topics. Every subscriber receives at QoS 0. Call
        :func:`drop` to sever every client link at once; subscriptions to
        any topic in :attr:`refused` are answered with a failure code.
    """

    def __init__(self):

        self.clients = dict()
        self.published = list()
        self.connections = 0
        self.refused = set()
        self.lock = threading.Lock()
        self.send_lock = threading.Lock()
        self.shutdown = False

        self.socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.socket.bind(('127.0.0.1', 0))
        self.socket.listen(64)
        self.socket.settimeout(0.1)
        self.port = self.socket.getsockname()[1]

        self.thread = threading.Thread(target=self.run)
        self.thread.daemon = True
        self.thread.start()


    def subscribers(self, topic):
        with self.lock:
            return sum(1 for topics in self.clients.values() if topic in topics)


    def drop(self):
        with self.lock:
            connections = list(self.clients)

        for conn in connections:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()


    def stop(self):
        self.shutdown = True
        self.thread.join(2)
        self.socket.close()
        self.drop()


    def run(self):

        while not self.shutdown:
            try:
                conn, address = self.socket.accept()
            except socket.timeout:
                continue
            except OSError:
                break

            conn.settimeout(None)

            with self.lock:
                self.clients[conn] = set()
                self.connections += 1

            thread = threading.Thread(target=self.serve, args=(conn,))
            thread.daemon = True
            thread.start()


    def send(self, conn, data):
        with self.send_lock:
            conn.sendall(data)


    def serve(self, conn):

        try:
            while True:
                header = _recv_exactly(conn, 1)
                if header is None:
                    break

                length = 0
                multiplier = 1
                while True:
                    byte = _recv_exactly(conn, 1)
                    if byte is None:
                        return
                    length += (byte[0] & 0x7f) * multiplier
                    multiplier *= 128
                    if byte[0] & 0x80 == 0:
                        break

                body = _recv_exactly(conn, length) if length else b''
                if body is None:
                    break

                kind = header[0] >> 4
                flags = header[0] & 0x0f

                if kind == CONNECT:
                    self.send(conn, _packet(0x20, b'\x00\x00'))

                elif kind == SUBSCRIBE:
                    offset = 2
                    granted = bytearray()
                    while offset < len(body):
                        size, = struct.unpack_from('!H', body, offset)
                        offset += 2
                        topic = body[offset:offset + size].decode('utf-8')
                        offset += size + 1
                        if topic in self.refused:
                            granted.append(0x80)
                            continue
                        granted.append(0)
                        with self.lock:
                            self.clients[conn].add(topic)
                    self.send(conn, _packet(0x90, body[:2] + bytes(granted)))

                elif kind == UNSUBSCRIBE:
                    self.send(conn, _packet(0xb0, body[:2]))

                elif kind == PUBLISH:
                    qos = (flags >> 1) & 0x03
                    size, = struct.unpack_from('!H', body, 0)
                    topic = body[2:2 + size].decode('utf-8')
                    offset = 2 + size
                    packet_id = None
                    if qos > 0:
                        packet_id = body[offset:offset + 2]
                        offset += 2

                    # Fan out before acknowledging, so that a sender that
                    # has its PUBACK knows the subscribers have the bytes.
                    self.deliver(topic, body[offset:])

                    if packet_id is not None:
                        self.send(conn, _packet(0x40, packet_id))

                elif kind == PINGREQ:
                    self.send(conn, _packet(0xd0))

                elif kind == DISCONNECT:
                    break

        except OSError:
            pass

        finally:
            with self.lock:
                self.clients.pop(conn, None)
            conn.close()


    def deliver(self, topic, payload):

        with self.lock:
            self.published.append((topic, payload))
            targets = [conn for conn, topics in self.clients.items() if topic in topics]

        packet = _packet(0x30, _string(topic) + payload)

        for conn in targets:
            try:
                self.send(conn, packet)
            except OSError:
                pass


# end of class StubBroker



class Recorder(crier.Executor):
    """ An executor that remembers commands instead of running them.
    """

    def __init__(self, template='echo "{}"'):
        crier.Executor.__init__(self, template)
        self.commands = list()
        self.states = list()
        self.listener = None
        self.lock = threading.Lock()


    def spawn(self, command):
        with self.lock:
            self.commands.append(command)
            if self.listener is not None:
                self.states.append(self.listener.state)


# end of class Recorder



class Canned(crier.transport.Transport):
    """ A transport that replays a fixed list of payloads and records
        anything sent through it.
    """

    def __init__(self, payloads=(), error=None):
        self.payloads = list(payloads)
        self.sent = list()
        self.error = error
        self.closed = False
        self.opened = False


    def open(self):
        self.opened = True


    @property
    def is_open(self):
        return self.opened and not self.closed


    def listen(self):
        for payload in self.payloads:
            if self.closed:
                break
            yield payload


    def send(self, payload):
        if self.error is not None:
            raise self.error
        self.sent.append(payload)


    def close(self):
        self.closed = True


# end of class Canned



@pytest.fixture
def broker():

    broker = StubBroker()
    yield broker
    broker.stop()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def canned():
    return Canned


@pytest.fixture
def unused_port():

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def wait_for():

    def wait_for(predicate, timeout=5):
        expiration = time.time() + timeout
        while time.time() < expiration:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return wait_for


@pytest.fixture
def start_listener():

    started = list()

    def start(listener):
        thread = threading.Thread(target=listener.run)
        thread.daemon = True
        thread.start()
        started.append((listener, thread))
        return thread

    yield start

    for listener, thread in started:
        listener.stop()
        thread.join(5)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
