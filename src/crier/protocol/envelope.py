""" The :class:`Envelope` is the only thing that crosses the wire. It carries
    an optional authentication token and the message text, and is encoded
    identically for every transport::

        [auth_len:u16][auth bytes][text_len:u32][text bytes]

    All integers are big-endian. An *auth_len* of zero means no token was
    presented. The text must be non-empty UTF-8, and no longer than
    :data:`MAXIMUM_TEXT` bytes once encoded.
"""

import struct


MAXIMUM_TEXT = 65536
MAXIMUM_AUTH = 0xffff

_AUTH_LENGTH = struct.Struct('!H')
_TEXT_LENGTH = struct.Struct('!I')


class MalformedEnvelope(ValueError):
    """ The bytes presented do not describe a valid envelope.
    """


class IncompleteFrame(MalformedEnvelope):
    """ The bytes presented stop short of the length they declare.
    """


class Envelope:
    """ Immutable container for one message. The *text* is required; the
        *auth* token is optional, and an empty token is treated the same
        as no token at all.
    """

    __slots__ = ('auth', 'text')

    def __init__(self, text, auth=None):

        if text is None or text == '':
            raise MalformedEnvelope('an envelope must contain text')

        if auth == '':
            auth = None

        object.__setattr__(self, 'text', str(text))
        object.__setattr__(self, 'auth', auth)


    def __setattr__(self, name, value):
        raise AttributeError('Envelope instances are immutable')


    def __eq__(self, other):
        if isinstance(other, Envelope):
            return self.text == other.text and self.auth == other.auth
        return NotImplemented


    def __hash__(self):
        return hash((self.auth, self.text))


    def __repr__(self):
        if self.auth is None:
            auth = None
        else:
            auth = '***'

        return 'Envelope(text=%r, auth=%r)' % (self.text, auth)


# end of class Envelope



def pack(envelope, maximum=MAXIMUM_TEXT):
    """ Serialize an :class:`Envelope` to bytes. Raise
        :class:`MalformedEnvelope` if either field exceeds its limit; nothing
        is ever truncated.
    """

    if envelope.auth is None:
        auth = b''
    else:
        auth = envelope.auth.encode('utf-8')

    if len(auth) > MAXIMUM_AUTH:
        raise MalformedEnvelope('auth token is %d bytes, limit is %d' % (len(auth), MAXIMUM_AUTH))

    text = envelope.text.encode('utf-8')

    if len(text) > maximum:
        raise MalformedEnvelope('text is %d bytes, limit is %d' % (len(text), maximum))

    parts = (_AUTH_LENGTH.pack(len(auth)), auth, _TEXT_LENGTH.pack(len(text)), text)
    return b''.join(parts)



def frame_length(buffer, maximum=MAXIMUM_TEXT):
    """ Inspect the leading bytes of a stream *buffer* and return the total
        size of the frame it begins, or None if more bytes are required
        before that can be known. An oversized text length is rejected as
        soon as its prefix arrives, so that the remainder never needs to be
        buffered.
    """

    available = len(buffer)

    if available < _AUTH_LENGTH.size:
        return None

    auth_length, = _AUTH_LENGTH.unpack_from(buffer, 0)
    text_offset = _AUTH_LENGTH.size + auth_length

    if available < text_offset + _TEXT_LENGTH.size:
        return None

    text_length, = _TEXT_LENGTH.unpack_from(buffer, text_offset)

    if text_length == 0:
        raise MalformedEnvelope('declared text length is zero')

    if text_length > maximum:
        raise MalformedEnvelope('declared text length %d exceeds limit %d' % (text_length, maximum))

    return text_offset + _TEXT_LENGTH.size + text_length



def unpack(data, maximum=MAXIMUM_TEXT):
    """ Deserialize exactly one :class:`Envelope` from *data*. The buffer
        must contain one complete frame and nothing else.
    """

    data = bytes(data)
    total = frame_length(data, maximum)

    if total is None or len(data) < total:
        raise IncompleteFrame('frame truncated after %d bytes' % (len(data)))

    if len(data) > total:
        raise MalformedEnvelope('%d trailing bytes after frame' % (len(data) - total))

    auth_length, = _AUTH_LENGTH.unpack_from(data, 0)
    auth_end = _AUTH_LENGTH.size + auth_length
    text_begin = auth_end + _TEXT_LENGTH.size

    try:
        auth = data[_AUTH_LENGTH.size:auth_end].decode('utf-8')
        text = data[text_begin:total].decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedEnvelope('invalid UTF-8: ' + str(e)) from e

    return Envelope(text, auth)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
