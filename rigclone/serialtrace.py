# Copyright 2025 Dan Smith <chirp@f.danplanet.com>
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


import collections
import datetime
import logging
import os
import serial
from serial.tools import list_ports as serial_list_ports
import tempfile
import time

from rigclone import config
from rigclone import errors
from rigclone import util

LOG = logging.getLogger(__name__)

# Trace files from earlier sessions in this process, oldest first
KEEP_TRACES = 10
TRACEFILES = collections.deque()


def get_trace_entry(direction, start_ts, data):
    """Format @data as hexdump lines stamped with the time since @start_ts"""
    stamp = '[%8.3f] %s' % (time.monotonic() - start_ts, direction)
    dump = [line for line in util.hexprint(data, block_size=16).splitlines()
            if line.strip()]
    if not dump and direction == 'R':
        return ['%s # timeout\n' % stamp]
    return ['%s %s\n' % (stamp, line) for line in dump]


def forget_trace_files(keep=KEEP_TRACES):
    """Delete all but the newest @keep trace files"""
    while len(TRACEFILES) > keep:
        fn = TRACEFILES.popleft()
        try:
            os.remove(fn)
        except FileNotFoundError:
            continue
        except OSError as e:
            LOG.error('Unable to remove trace %s: %s', fn, e)
        else:
            LOG.debug('Removed trace %s', fn)


class TraceFile:
    """A text file holding a timestamped hexdump of one serial session"""

    def __init__(self, label):
        self._start = time.monotonic()
        self._f = tempfile.NamedTemporaryFile(
            mode='w', delete=False, prefix='rigclone-trace-', suffix='.txt')
        self.name = self._f.name
        TRACEFILES.append(self.name)
        forget_trace_files()
        self.note('Serial trace of %s started %s' % (
            label, datetime.datetime.now().isoformat()))

    def record(self, direction, data):
        self._f.writelines(get_trace_entry(direction, self._start, data))

    def note(self, message):
        self._f.write('# %s\n' % message)

    def close(self):
        try:
            self.note('Trace ended %s' % datetime.datetime.now().isoformat())
        finally:
            self._f.close()


class SerialTrace(serial.Serial):
    """A serial port that copies all of its traffic to a TraceFile

    Trace failures never interrupt the port itself. The first one is
    logged and tracing stops for the rest of the session.
    """

    def __init__(self, *a, **k):
        self.trace = None
        super().__init__(*a, **k)

    def _abandon(self, action, e):
        LOG.error('Serial trace stopped, failed to %s: %s', action, e)
        self.trace = None

    def open(self):
        super().open()
        try:
            self.trace = TraceFile(self.port)
        except OSError as e:
            self._abandon('create trace file', e)
        else:
            LOG.info('Tracing serial traffic to %s', self.trace.name)

    def write(self, data):
        count = super().write(data)
        self._record('W', data)
        return count

    def read(self, size=1):
        data = super().read(size)
        self._record('R', data)
        return data

    def _record(self, direction, data):
        if self.trace is None:
            return
        try:
            self.trace.record(direction, data)
        except OSError as e:
            self._abandon('record traffic', e)

    def log(self, message):
        """Add a comment line to the trace, such as which block is next"""
        if self.trace is None:
            return
        try:
            self.trace.note(message)
        except OSError as e:
            self._abandon('add note', e)

    def close(self):
        super().close()
        trace, self.trace = self.trace, None
        if trace is not None:
            try:
                trace.close()
            except OSError as e:
                LOG.error('Failed to close trace %s: %s', trace.name, e)
            else:
                LOG.info('Serial trace saved as %s', trace.name)


def open_serial(port, rclass, conf=None):
    """Open @port configured for talking to radio class @rclass

    The port is 8N1 with the baud rate and flow control the driver asks
    for. Reads time out after the configured number of seconds.
    """
    if conf is None:
        conf = config.get('serial')
    timeout = conf.get_float('timeout', default=2.0)

    try:
        if '://' in port:
            pipe = serial.serial_for_url(port, do_not_open=True)
        elif conf.get_bool('trace'):
            pipe = SerialTrace()
            pipe.port = port
        else:
            pipe = serial.Serial()
            pipe.port = port
        pipe.baudrate = rclass.BAUD_RATE
        pipe.bytesize = serial.EIGHTBITS
        pipe.parity = serial.PARITY_NONE
        pipe.stopbits = serial.STOPBITS_ONE
        pipe.timeout = timeout
        pipe.write_timeout = timeout
        pipe.rtscts = rclass.HARDWARE_FLOW
        pipe.rts = rclass.WANTS_RTS
        pipe.dtr = rclass.WANTS_DTR
        pipe.open()
    except serial.SerialException as e:
        raise errors.SerialError('Unable to open %s: %s' % (port, e))

    LOG.debug('Serial opened: %s (rts=%s dtr=%s)',
              pipe, pipe.rts, pipe.dtr)
    return pipe


def read_some(pipe, count, what='data'):
    """Read up to @count bytes from @pipe, fewer if the port times out"""
    try:
        return pipe.read(count)
    except serial.SerialException as e:
        raise errors.SerialError('Failed reading %s: %s' % (what, e))


def read_exact(pipe, count, what='data'):
    """Read exactly @count bytes from @pipe

    The port timeout bounds each read. Running out of time before
    @count bytes arrive raises RadioTimeoutError naming @what.
    """
    data = b''
    while len(data) < count:
        chunk = read_some(pipe, count - len(data), what)
        if not chunk:
            break
        data += chunk
    if len(data) != count:
        raise errors.RadioTimeoutError(
            'Timeout reading %s: got %i of %i bytes' % (
                what, len(data), count))
    return data


def write_all(pipe, data, what='data'):
    try:
        pipe.write(data)
    except serial.SerialTimeoutException:
        raise errors.RadioTimeoutError('Timeout writing %s' % what)
    except serial.SerialException as e:
        raise errors.SerialError('Failed writing %s: %s' % (what, e))


def list_ports():
    """Return the device names of the serial ports on this system"""
    return sorted(p.device for p in serial_list_ports.comports())
