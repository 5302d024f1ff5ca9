""" Command-line entry point. Start a listener first, then send messages to
    it from anywhere::

        crier --listen 0.0.0.0:5555 -m 'notify-send "Alert" "{}"'
        crier --send 192.168.1.10:5555 -m 'Build done!'

        crier --listen --topic my-builds -m 'echo {} >> builds.log'
        crier --send --topic my-builds -m 'Build done!' -a hunter2
"""

import argparse
import logging
import signal
import sys
import threading

from . import __version__
from . import config
from . import transport
from .execute import Executor
from .listener import Listener
from .protocol import AuthGuard
from .sender import Sender

logger = logging.getLogger('crier')

EXIT_USAGE = 2

epilog = """examples:
  Listen: crier --listen 0.0.0.0:5555 -m 'notify-send "Alert" "{}"'
  Send:   crier --send 192.168.1.10:5555 -m 'Build done!'
  Relay:  crier --listen --topic my-builds -m 'echo {}'
          crier --send --topic my-builds -m 'Build done!'
"""


def parser():

    parser = argparse.ArgumentParser(
        prog='crier',
        description='Simple push notification tool.',
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument('--listen', nargs='?', const='', metavar='ADDR',
        help='listen mode; bind address (e.g. 0.0.0.0:5555), omit for relay mode')
    mode.add_argument('--send', nargs='?', const='', metavar='ADDR',
        help='send mode; target address (e.g. 192.168.1.10:5555), omit for relay mode')

    parser.add_argument('-m', '--message',
        help='listen: command template, {} is replaced by the message; send: message to send')
    parser.add_argument('-a', '--auth',
        help='optional shared authentication token')
    parser.add_argument('--topic',
        help='relay through an MQTT broker on this topic')
    parser.add_argument('--broker',
        help='MQTT broker host (default: %s)' % (transport.relay.DEFAULT_BROKER))
    parser.add_argument('--port', type=int,
        help='MQTT broker port (default: %d)' % (transport.relay.DEFAULT_PORT))
    parser.add_argument('--timeout', type=float,
        help='connect/publish timeout in seconds')
    parser.add_argument('-p', '--preset',
        help='use a named preset from the presets file')
    parser.add_argument('--presets', metavar='FILE',
        help='presets file (default: $CRIER_HOME/presets.yaml)')
    parser.add_argument('-v', '--verbose', action='store_true',
        help='log debugging detail')
    parser.add_argument('--version', action='version', version='%(prog)s ' + __version__)

    return parser



def resolve(arguments):
    """ Turn parsed *arguments* into a :class:`crier.config.RunConfig`.
        Raises ValueError or KeyError for bad combinations.
    """

    if arguments.listen is not None:
        role = 'listen'
        address = arguments.listen
    else:
        role = 'send'
        address = arguments.send

    if address == '':
        address = None

    preset = None
    if arguments.preset is not None:
        preset = config.get_preset(arguments.preset, arguments.presets)

    return config.resolve(role, address=address, topic=arguments.topic,
                          broker=arguments.broker, port=arguments.port,
                          auth=arguments.auth, message=arguments.message,
                          preset=preset)



def listen(run_config, timeout=None):

    link = transport.for_mode(run_config.mode, timeout)
    listener = Listener(link, Executor(run_config.message), AuthGuard(run_config.auth))

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, lambda signum, frame: listener.stop())

    try:
        listener.run()
    except transport.TransportError as e:
        logger.error('Failed to listen: %s', e)
        return 1
    except KeyboardInterrupt:
        pass

    return 0



def send(run_config, timeout=None):

    link = transport.for_mode(run_config.mode, timeout)
    outcome = Sender(link, run_config.auth).send(run_config.message)
    return outcome.exit_code



def main(argv=None):

    arguments = parser().parse_args(argv)

    if arguments.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(message)s')

    try:
        run_config = resolve(arguments)
    except (KeyError, OSError, ValueError) as e:
        message = e.args[0] if isinstance(e, KeyError) else str(e)
        sys.stderr.write('crier: error: %s\n' % (message))
        return EXIT_USAGE

    if run_config.role == 'listen':
        return listen(run_config, arguments.timeout)
    else:
        return send(run_config, arguments.timeout)


if __name__ == '__main__':
    sys.exit(main())


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
