""" Resolution of a single :class:`RunConfig` from command-line options,
    an optional named preset, and built-in defaults. The rest of crier only
    ever sees the resolved :class:`RunConfig`; nothing here is consulted
    once a listener or sender is running.

    Presets live in a YAML file, by default ``presets.yaml`` in the crier
    home directory::

        builds:
          listen: 0.0.0.0:5555
          message: notify-send "Build" "{}"
          auth: hunter2

        remote:
          topic: my-team/builds
          broker: broker.hivemq.com
          message: echo {} >> ~/builds.log
"""

import collections
import os

import yaml

from .transport.direct import parse_address
from .transport.relay import DEFAULT_BROKER, DEFAULT_PORT, check_topic


preset_keys = frozenset(('listen', 'send', 'broker', 'port', 'topic', 'auth', 'message'))
roles = ('listen', 'send')


class DirectMode(collections.namedtuple('DirectMode', ('address',))):
    """ Point-to-point delivery to or from ``host:port``.
    """

    __slots__ = ()
    kind = 'direct'



class RelayMode(collections.namedtuple('RelayMode', ('host', 'port', 'topic'))):
    """ Delivery through the MQTT broker at *host*:*port* on *topic*.
    """

    __slots__ = ()
    kind = 'relay'



class RunConfig(collections.namedtuple('RunConfig', ('role', 'mode', 'message', 'auth'))):
    """ Everything a listener or sender needs. For a listener, *message* is
        the command template; for a sender, it is the text to deliver.
    """

    __slots__ = ()

    def __new__(cls, role, mode, message, auth=None):

        if role not in roles:
            raise ValueError('role must be one of %s, not %r' % (roles, role))

        if message is None or message == '':
            raise ValueError('a message is required')

        if auth == '':
            auth = None

        return super().__new__(cls, role, mode, message, auth)



def directory(default=None):
    """ Return the directory where crier looks for its preset file. This
        defaults to ``$HOME/.crier``, but can be overridden by calling this
        method with a valid path, or by setting the ``CRIER_HOME``
        environment variable. Changes to the environment variable are
        ignored once this method has found a directory.
    """

    if default is not None:
        default = str(default)
        default = os.path.expandvars(default)

        if os.path.isabs(default):
            pass
        else:
            raise ValueError('the default directory must be an absolute path')

        os.environ['CRIER_HOME'] = default
        directory.found = default


    found = directory.found

    if found is not None:
        return found

    try:
        found = os.environ['CRIER_HOME']
    except KeyError:
        pass
    else:
        directory.found = found
        return found

    try:
        home = os.environ['HOME']
    except KeyError:
        raise RuntimeError('CRIER_HOME and HOME environment variables not set, cannot determine crier configuration directory')

    found = os.path.join(home, '.crier')

    directory.found = found
    return found

directory.found = None



def load_presets(filename=None):
    """ Load and validate every preset in *filename*. If no filename is
        given, ``presets.yaml`` in the :func:`directory` is used, and a
        missing file there simply means there are no presets.
    """

    if filename is None:
        filename = os.path.join(directory(), 'presets.yaml')
        if os.path.exists(filename):
            pass
        else:
            return dict()

    with open(filename, 'r', encoding='utf-8') as handle:
        try:
            contents = yaml.safe_load(handle)
        except yaml.YAMLError as e:
            raise ValueError('%s: %s' % (filename, e)) from e

    if contents is None:
        return dict()

    if isinstance(contents, dict):
        pass
    else:
        raise ValueError('%s: expected a mapping of preset names' % (filename))

    presets = dict()

    for name, preset in contents.items():
        if isinstance(preset, dict):
            pass
        else:
            raise ValueError('%s: preset %r is not a mapping' % (filename, name))

        unknown = set(preset) - preset_keys
        if unknown:
            unknown = ', '.join(sorted(map(str, unknown)))
            raise ValueError('%s: preset %r has unknown keys: %s' % (filename, name, unknown))

        presets[str(name)] = preset

    return presets



def get_preset(name, filename=None):
    """ Return the preset called *name*; raise KeyError if there is none.
    """

    presets = load_presets(filename)

    try:
        return presets[name]
    except KeyError:
        raise KeyError('no preset named %r' % (name)) from None



def resolve(role, address=None, topic=None, broker=None, port=None,
            auth=None, message=None, preset=None):
    """ Build a :class:`RunConfig`. Explicit arguments take precedence over
        values from the *preset* dictionary, which take precedence over the
        defaults. A topic selects relay mode, an address selects direct
        mode; asking for both at the same level is an error.
    """

    if preset is None:
        preset = dict()

    if address is not None and topic is not None:
        raise ValueError('choose either an address or a topic, not both')

    if address is None and topic is None:
        address = preset.get(role)
        topic = preset.get('topic')

        if address is not None and topic is not None:
            raise ValueError('the preset defines both an address and a topic')

    if broker is None:
        broker = preset.get('broker', DEFAULT_BROKER)

    if port is None:
        port = preset.get('port', DEFAULT_PORT)

    if auth is None:
        auth = preset.get('auth')

    if message is None:
        message = preset.get('message')

    if auth is not None:
        auth = str(auth)

    if message is not None:
        message = str(message)

    if topic is not None:
        mode = _relay_mode(broker, port, str(topic))
    elif address is not None:
        address = str(address)
        parse_address(address)
        mode = DirectMode(address)
    else:
        raise ValueError('an address or a topic is required to %s' % (role))

    return RunConfig(role, mode, message, auth)



def _relay_mode(broker, port, topic):

    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ValueError('invalid broker port: %r' % (port)) from None

    if port < 1 or port > 65535:
        raise ValueError('broker port out of range: %d' % (port))

    if broker is None or broker == '':
        raise ValueError('a broker host is required')

    check_topic(topic)

    return RelayMode(str(broker), port, topic)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
