""" Turn an accepted message into a side effect: substitute the message text
    into the operator's command template and hand the result to the shell.

    The template is trusted. No escaping is applied to the substituted text;
    quoting is entirely the responsibility of whoever wrote the template.
"""

import logging
import subprocess
import threading

logger = logging.getLogger(__name__)

placeholder = '{}'


def substitute(template, text):
    """ Replace every literal ``{}`` in *template* with *text*. A template
        without a placeholder is returned unchanged, and the text is dropped.
    """

    return template.replace(placeholder, text)



class Executor:
    """ Run the configured command *template* once per message. Commands are
        launched and left to run; a background thread reaps each child so
        that a non-zero exit status can be logged. Nothing waits on a command
        to finish, and nothing is killed when the listener stops.
    """

    def __init__(self, template):

        if template is None or template == '':
            raise ValueError('a command template is required')

        self.template = template


    def run(self, text):
        """ Substitute *text* into the template and launch the result. Returns
            the :class:`subprocess.Popen` instance, or None if the command
            could not be started. Never raises for a failed command.
        """

        command = substitute(self.template, text)
        logger.info('Running: %s', command)
        return self.spawn(command)


    def spawn(self, command):
        """ Launch *command* through the platform shell. Subclasses may
            override this to change how commands are started.
        """

        try:
            process = subprocess.Popen(command, shell=True)
        except OSError as e:
            logger.warning('Failed to run %r: %s', command, e)
            return None

        reaper = threading.Thread(target=self._reap, args=(process, command))
        reaper.daemon = True
        reaper.start()

        return process


    def _reap(self, process, command):

        status = process.wait()

        if status != 0:
            logger.warning('Command failed with status %d: %s', status, command)


# end of class Executor


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
