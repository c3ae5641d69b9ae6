# Copyright 2015  Zachary T Welch  <zach@mandolincreekfarm.com>
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

"""Console and log file setup for rigclone

Early debugging before the command line is parsed is driven by the
environment:

RIGCLONE_DEBUG      console level, as a number or a name (default: debug)
RIGCLONE_LOG        also log to this file
RIGCLONE_LOG_LEVEL  level for RIGCLONE_LOG (default: debug)
RIGCLONE_DEBUG_LOG  send the console to debug.log in the config directory
"""

import argparse
import contextlib
import logging
import os
import sys

from rigclone import platform
from rigclone import RIGCLONE_VERSION

#: Names accepted wherever a log level is given
log_level_names = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def version_string():
    return "rigclone %s on %s (Python %s)" % (
        RIGCLONE_VERSION,
        platform.get_platform().os_version_string(),
        sys.version.split()[0])


def _parse_level(value):
    """Turn a number or level name into a logging level"""
    try:
        return int(value)
    except ValueError:
        return log_level_names[value]


class VersionAction(argparse.Action):
    def __call__(self, parser, namespace, value, option_string=None):
        print(version_string())
        sys.exit(1)


def add_version_argument(parser):
    parser.add_argument("--version", action=VersionAction, nargs=0,
                        help="Print version and exit")


class Logger:
    log_format = '[%(asctime)s] %(name)s - %(levelname)s: %(message)s'
    console_format = '%(levelname)s: %(message)s'

    def __init__(self):
        self.logger = logging.getLogger()
        self.logger.setLevel(logging.DEBUG)
        self.LOG = logging.getLogger(__name__)
        self.logfile = None
        self.logname = None

        debug = os.getenv("RIGCLONE_DEBUG")
        if not debug:
            self.early_level = logging.WARNING
        else:
            try:
                self.early_level = _parse_level(debug)
            except KeyError:
                self.early_level = logging.DEBUG

        self.has_debug_log_file = (
            'RIGCLONE_TESTENV' not in os.environ and
            bool(os.getenv("RIGCLONE_DEBUG_LOG")))
        self._open_console()

        logname = os.getenv("RIGCLONE_LOG")
        if logname is not None:
            self.create_log_file(logname)
            self.set_log_level_by_name(
                os.getenv("RIGCLONE_LOG_LEVEL", "debug"))

        if self.early_level <= logging.DEBUG:
            self.LOG.debug(version_string())

    def _open_console(self):
        if self.has_debug_log_file:
            # Everything, including stray prints, goes to the file
            stream = open(platform.get_platform().config_file("debug.log"),
                          "w")
            sys.stdout = sys.stderr = stream
            self.early_level = logging.DEBUG
            fmt = self.log_format
        else:
            stream = None
            fmt = self.console_format

        self.console = logging.StreamHandler(stream)
        self.console.setFormatter(logging.Formatter(fmt))
        self.console_level = self.early_level
        self.console.setLevel(self.early_level)
        self.logger.addHandler(self.console)

    def create_log_file(self, name):
        """Start logging to @name, truncating whatever was there"""
        if self.logfile is not None:
            self.logger.error("already logging to %s", self.logname)
            return
        self.logname = name
        self.logfile = logging.FileHandler(name, mode="w")
        self.logfile.setFormatter(logging.Formatter(self.log_format))
        self.logger.addHandler(self.logfile)

    def set_verbosity(self, level):
        self.LOG.debug("verbosity=%d", level)
        self.console_level = min(level, logging.CRITICAL)
        self.console.setLevel(self.console_level)

    def set_log_level(self, level):
        self.LOG.debug("log level=%d", level)
        self.logfile.setLevel(min(level, logging.CRITICAL))

    def set_log_level_by_name(self, level):
        self.set_log_level(_parse_level(level))

    instance: object


Logger.instance = Logger()


def is_visible(level):
    """Return True if a message at @level would reach the console"""
    return level >= Logger.instance.console_level


def add_arguments(parser):
    parser.add_argument("-q", "--quiet", action="count", default=0,
                        help="Decrease verbosity")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase verbosity")
    parser.add_argument("--log", dest="log_file", default=None,
                        help="Log messages to a file")
    parser.add_argument("--log-level", default="debug",
                        help="Log file verbosity (%s).  Defaults to "
                             "'debug'." % ", ".join(log_level_names))


def handle_options(options):
    """Apply the options added by add_arguments()"""
    inst = Logger.instance

    # Each -v or -q moves the console one level from the default WARNING
    if options.verbose or options.quiet:
        inst.set_verbosity(logging.WARNING +
                           10 * (options.quiet - options.verbose))

    if options.log_file:
        inst.create_log_file(options.log_file)
        inst.set_log_level_by_name(options.log_level)

    if inst.early_level > logging.DEBUG:
        inst.LOG.debug(version_string())


class LookbackHandler(logging.Handler):
    """Keeps every record it is handed, for later inspection"""
    def __init__(self):
        super().__init__()
        self._history = []

    def emit(self, record):
        self._history.append(record)

    def get_history(self):
        return self._history


@contextlib.contextmanager
def log_history(level, root=None):
    """Capture records at @level or above sent to the @root logger
    while the context is active"""
    handler = LookbackHandler()
    handler.setLevel(level)
    log = logging.getLogger(root)
    log.addHandler(handler)
    try:
        yield handler
    finally:
        log.removeHandler(handler)
