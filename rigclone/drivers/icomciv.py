# Copyright 2008 Dan Smith <dsmith@danplanet.com>
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

import logging
import struct

import serial

from rigclone import bitwise
from rigclone import rig_common
from rigclone import directory
from rigclone import errors
from rigclone import util

LOG = logging.getLogger(__name__)

PREAMBLE = 0xFE
EOM = 0xFD
CMD_OK = 0xFB
CMD_NG = 0xFA
CONTROLLER = 0xE0

# A frame is FE FE dst src cmd FD at the very least
MIN_FRAME = 6
MAX_FRAME = 1024

ECHO_TEST = bytes([PREAMBLE, PREAMBLE, CONTROLLER, CONTROLLER, CMD_NG, EOM])
ECHO_TIMEOUT = 0.1
BAUD_TEST_TIMEOUT = 0.25
BAUDS = [9600, 19200, 38400, 57600, 115200, 4800]

# IC-9700 memory record, as carried in a 1A 00 frame:
#
# struct {
#   u8 bank;               /* 0 */
#   bbcd number[2];        /* 1 */
#   u8 select_memory;      /* 3 */
#   lbcd freq[5];          /* 4 */
#   bbcd mode;             /* 9 */
#   u8 filter;             /* 10 */
#   bbcd data_mode;        /* 11 */
#   u8 duplex:4,           /* 12 */
#      tmode:4;
#   u8 dig_sql:4,          /* 13 */
#      unused:4;
#   bbcd rtone[3];         /* 14 */
#   bbcd ctone[3];         /* 17 */
#   u8 dtcs_polarity;      /* 20 */
#   bbcd dtcs[2];          /* 21 */
#   u8 dig_code;           /* 23 */
#   lbcd duplexOffset[3];  /* 24 */
#   char urcall[8];        /* 27 */
#   char rpt1call[8];      /* 35 */
#   char rpt2call[8];      /* 43 */
#   char name[16];         /* 51 */
# };
IC9700_RECORD = {
    'bank': (0, 1),
    'number': (1, 2),
    'select_memory': (3, 1),
    'freq': (4, 5),
    'mode': (9, 1),
    'filter': (10, 1),
    'data_mode': (11, 1),
    'duplex_tmode': (12, 1),
    'dig_sql': (13, 1),
    'rtone': (14, 3),
    'ctone': (17, 3),
    'dtcs_polarity': (20, 1),
    'dtcs': (21, 2),
    'dig_code': (23, 1),
    'duplexOffset': (24, 3),
    'urcall': (27, 8),
    'rpt1call': (35, 8),
    'rpt2call': (43, 8),
    'name': (51, 16),
}
IC9700_RECORD_SIZE = 67

# Tone nibble values past the plain tone modes select one of these
IC9700_CROSS_MODES = ['DTCS->', 'Tone->DTCS', 'DTCS->Tone', 'Tone->Tone']

DTCS_POLARITY = {
    0x00: 'NN',
    0x01: 'NR',
    0x10: 'RN',
    0x11: 'RR',
}


def _bcd_location(number, digits=4):
    # 123 -> 0x0123
    return int(('%0' + str(digits) + 'i') % number, 16)


class Frame:
    """Base class for an ICOM frame"""
    _cmd = 0x00
    _sub = 0x00

    def __init__(self):
        self._data = b""

    def set_command(self, cmd, sub=None):
        """Set the command number (and optional subcommand)"""
        self._cmd = cmd
        self._sub = sub

    def get_command(self):
        return self._cmd, self._sub

    def get_data(self):
        """Return the data payload"""
        return self._data

    def set_data(self, data):
        """Set the data payload"""
        self._data = bytes(data)

    def is_empty(self):
        """Return True if the payload is the radio's empty-channel
        sentinel"""
        return bool(self._data) and self._data[-1] == 0xFF

    def pack(self, src, dst):
        raw = struct.pack("BBBBB", PREAMBLE, PREAMBLE, src, dst, self._cmd)
        if self._sub is not None:
            raw += struct.pack("B", self._sub)
        return raw + self._data + bytes([EOM])

    def send(self, src, dst, pipe, willecho=False):
        """Send the frame over @pipe, using @src and @dst addresses"""
        raw = self.pack(src, dst)

        LOG.debug("%02x -> %02x (%i):\n%s",
                  src, dst, len(raw), util.hexprint(raw))

        try:
            pipe.write(raw)
            if willecho:
                echo = pipe.read(len(raw))
        except serial.SerialTimeoutException:
            raise errors.RadioTimeoutError('Timeout sending frame')
        except serial.SerialException as e:
            raise errors.SerialError('Failed sending frame: %s' % e)

        if willecho and echo != raw:
            LOG.debug("Echo did not match:\n%s", util.hexprint(echo))
            raise errors.InvalidResponseError(
                'Expected %i bytes of echo, got %i%s' % (
                    len(raw), len(echo),
                    len(echo) == len(raw) and ' that did not match' or ''))

    def read(self, pipe):
        """Read the frame from @pipe"""
        data = b""
        while not data.endswith(bytes([EOM])):
            try:
                char = pipe.read(1)
            except serial.SerialException as e:
                raise errors.SerialError('Failed reading frame: %s' % e)
            if not char:
                LOG.debug("Read %i bytes before timeout", len(data))
                raise errors.RadioTimeoutError("Timeout reading frame")
            data += char
            if len(data) > MAX_FRAME:
                raise errors.InvalidResponseError(
                    "Frame exceeds %i bytes without terminator" % MAX_FRAME)

        if data == bytes([EOM]):
            raise errors.RadioError("Radio reported error")
        elif len(data) < MIN_FRAME:
            raise errors.InvalidResponseError(
                "Short frame (%i bytes)" % len(data))
        elif data[:2] != bytes([PREAMBLE, PREAMBLE]):
            raise errors.InvalidResponseError(
                "Frame does not start with preamble: %s" % data[:2].hex())

        src, dst = struct.unpack("BB", data[2:4])
        LOG.debug("%02x <- %02x:\n%s", src, dst, util.hexprint(data))

        self._cmd = data[4]
        if self._sub is None or len(data) == MIN_FRAME:
            # This command has no subcommand, so there is no sub byte
            self._sub = None
            self._data = data[5:-1]
        else:
            self._sub = data[5]
            self._data = data[6:-1]

        return src, dst


class MemFrame(Frame):
    """A memory frame"""
    _cmd = 0x1A
    _sub = 0x00
    _loc = 0

    def set_location(self, loc):
        """Set the memory location number"""
        self._loc = loc
        self._data = struct.pack(">H", _bcd_location(loc))

    def make_empty(self):
        """Mark as empty so the radio will erase the memory"""
        self._data = struct.pack(">HB", _bcd_location(self._loc), 0xFF)


class BankMemFrame(MemFrame):
    """A memory frame for radios with multiple banks"""
    _bnk = 0

    def set_location(self, loc, bank=1):
        self._loc = loc
        self._bnk = bank
        self._data = struct.pack(">BH", _bcd_location(bank, 2),
                                 _bcd_location(loc))

    def make_empty(self):
        """Mark as empty so the radio will erase the memory"""
        self._data = struct.pack(">BHB", _bcd_location(self._bnk, 2),
                                 _bcd_location(self._loc), 0xFF)


def _record(data, name):
    pos, length = IC9700_RECORD[name]
    return data[pos:pos + length]


def _put(data, name, value):
    pos, length = IC9700_RECORD[name]
    if len(value) != length:
        raise errors.ValueTooWideError(
            '%i bytes does not fit in %i' % (len(value), length), name)
    data[pos:pos + length] = value


def _set(mem, name, value):
    try:
        setattr(mem, name, value)
    except ValueError as e:
        raise errors.CodecError(str(e), name)


def _dtcs_field(mem):
    # The record holds one code, which only receives in Tone->DTCS
    if mem.tmode == 'Cross' and mem.cross_mode == 'Tone->DTCS':
        return 'rx_dtcs'
    return 'dtcs'


class IC9700MemFrame(BankMemFrame):
    """An IC-9700 memory frame carrying a full channel record"""

    def decode(self, modes, tmodes, duplexes):
        """Return a Memory decoded from the record payload"""
        data = self._data
        if len(data) < IC9700_RECORD_SIZE:
            raise errors.InsufficientDataError(
                'Record is %i bytes, need %i' % (len(data),
                                                 IC9700_RECORD_SIZE),
                'record')

        def bcd(name, bigendian=True):
            return bitwise.bcd_to_int(_record(data, name), bigendian, name)

        mode = bitwise.lookup(modes, bcd('mode'), 'mode')
        if mode is None:
            raise errors.CodecError('Unsupported mode index %i' % bcd('mode'),
                                    'mode')

        if mode == 'DV':
            mem = rig_common.DVMemory()
        else:
            mem = rig_common.Memory()

        mem.number = bcd('number')
        mem.freq = bcd('freq', bigendian=False)
        mem.mode = mode
        mem.name = bitwise.get_string(_record(data, 'name')).rstrip()

        dupe_tmode = _record(data, 'duplex_tmode')[0]
        tone = bitwise.get_bits(dupe_tmode, 0, 4)
        if tone < len(tmodes):
            mem.tmode = tmodes[tone]
        else:
            mem.cross_mode = bitwise.lookup(IC9700_CROSS_MODES,
                                            tone - len(tmodes), 'tmode')
            mem.tmode = 'Cross'
        mem.duplex = bitwise.lookup(duplexes,
                                    bitwise.get_bits(dupe_tmode, 4, 4),
                                    'duplex')
        mem.offset = bcd('duplexOffset', bigendian=False) * 100

        # The radio keeps tones it never uses as zero
        _set(mem, 'rtone', bcd('rtone') / 10.0 or 88.5)
        _set(mem, 'ctone', bcd('ctone') / 10.0 or 88.5)
        mem.dtcs_polarity = DTCS_POLARITY.get(
            _record(data, 'dtcs_polarity')[0], 'NN')
        _set(mem, _dtcs_field(mem), bcd('dtcs'))

        if mode == 'DV':
            mem.dv_urcall = bitwise.get_string(_record(data, 'urcall'))
            mem.dv_rpt1call = bitwise.get_string(_record(data, 'rpt1call'))
            mem.dv_rpt2call = bitwise.get_string(_record(data, 'rpt2call'))
            _set(mem, 'dv_code', _record(data, 'dig_code')[0])

        return mem

    def encode(self, mem, modes, tmodes, duplexes):
        """Set the record payload from @mem"""
        data = bytearray(IC9700_RECORD_SIZE)

        def bcd(name, value, width, bigendian=True):
            _put(data, name, bitwise.int_to_bcd(value, width, bigendian,
                                                name))

        _put(data, 'bank', bytes([_bcd_location(self._bnk, 2)]))
        bcd('number', self._loc, 2)
        _put(data, 'select_memory', b'\x00')
        bcd('freq', mem.freq, 5, bigendian=False)
        bcd('mode', bitwise.index_of(modes, mem.mode, 'mode'), 1)
        _put(data, 'filter', b'\x01')
        bcd('data_mode', 0, 1)

        if mem.tmode == 'Cross':
            tmode = len(tmodes) + bitwise.index_of(
                IC9700_CROSS_MODES, mem.cross_mode, 'cross_mode')
        else:
            tmode = bitwise.index_of(tmodes, mem.tmode, 'tmode')
        duplex = bitwise.index_of(duplexes, mem.duplex, 'duplex')
        dupe_tmode = bitwise.set_bits(0, 4, 4, duplex, 'duplex')
        dupe_tmode = bitwise.set_bits(dupe_tmode, 0, 4, tmode, 'tmode')
        _put(data, 'duplex_tmode', bytes([dupe_tmode]))
        _put(data, 'dig_sql', b'\x00')

        bcd('rtone', int(round(mem.rtone * 10)), 3)
        bcd('ctone', int(round(mem.ctone * 10)), 3)
        _put(data, 'dtcs_polarity',
             bytes([util.get_dict_rev(DTCS_POLARITY, mem.dtcs_polarity)]))
        bcd('dtcs', getattr(mem, _dtcs_field(mem)), 2)
        bcd('duplexOffset', int(mem.offset) // 100, 3, bigendian=False)

        if isinstance(mem, rig_common.DVMemory):
            _put(data, 'dig_code', bytes([mem.dv_code]))
            urcall = mem.dv_urcall
            rpt1call = mem.dv_rpt1call
            rpt2call = mem.dv_rpt2call
        else:
            _put(data, 'dig_code', b'\x00')
            urcall = 'CQCQCQ'
            rpt1call = rpt2call = ''

        _put(data, 'urcall', bitwise.put_string(urcall, 8, field='urcall'))
        _put(data, 'rpt1call', bitwise.put_string(rpt1call, 8,
                                                  field='rpt1call'))
        _put(data, 'rpt2call', bitwise.put_string(rpt2call, 8,
                                                  field='rpt2call'))
        _put(data, 'name', bitwise.put_string(mem.name, 16, field='name'))

        self._data = bytes(data)


class IcomCIVRadio(rig_common.LiveRadio):
    """Base class for ICOM CIV-based radios"""
    VENDOR = "Icom"
    BAUD_RATE = 19200
    WANTS_RTS = False
    _model = "\x00"
    _template = 0
    _bank = None
    _frame_class = MemFrame

    _MODES = []
    _valid_tmodes = ['', 'Tone', 'TSQL', 'DTCS']
    _valid_duplexes = ['', '-', '+']

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._willecho = None
        self._baud_detected = False

    def _detect_echo(self):
        oldtimeout = self.pipe.timeout
        self.pipe.timeout = ECHO_TIMEOUT
        try:
            self.pipe.reset_input_buffer()
            self.pipe.write(ECHO_TEST)
            resp = self.pipe.read(len(ECHO_TEST))
        except serial.SerialException as e:
            raise errors.SerialError('Failed detecting echo: %s' % e)
        finally:
            self.pipe.timeout = oldtimeout
        LOG.debug("Echo:\n%s", util.hexprint(resp))
        return resp == ECHO_TEST

    def _ensure_echo(self):
        if self._willecho is None:
            self._willecho = self._detect_echo()
            LOG.debug("Interface echo: %s", self._willecho)

    def _send_frame(self, frame):
        self._ensure_echo()
        frame.send(ord(self._model), CONTROLLER, self.pipe,
                   willecho=self._willecho)

    def _recv_frame(self, frame=None):
        if not frame:
            frame = Frame()
        frame.read(self.pipe)
        return frame

    def _check_ack(self, frame):
        cmd, _sub = frame.get_command()
        if cmd == CMD_NG:
            raise errors.RadioNakError('Radio refused command')
        elif cmd != CMD_OK:
            raise errors.InvalidResponseError(
                'Expected OK (%02x), radio sent %02x' % (CMD_OK, cmd))

    def _make_frame(self, number):
        f = self._frame_class()
        if self._bank is None:
            f.set_location(number)
        else:
            f.set_location(number, self._bank)
        return f

    def _read_memory_frame(self, number):
        f = self._make_frame(number)
        self._send_frame(f)

        f = self._recv_frame(self._frame_class())
        cmd, _sub = f.get_command()
        if cmd == CMD_NG:
            raise errors.RadioNakError('Radio refused to read memory %r' %
                                       number)
        elif cmd != self._frame_class._cmd:
            raise errors.InvalidResponseError(
                'Expected memory frame, radio sent command %02x' % cmd)
        return f

    def _detect_baudrate(self):
        if self._baud_detected:
            return
        bauds = list(BAUDS)
        bauds.remove(self.BAUD_RATE)
        bauds.insert(0, self.BAUD_RATE)

        oldtimeout = self.pipe.timeout
        try:
            for baud in bauds:
                self.pipe.baudrate = baud
                self.pipe.timeout = BAUD_TEST_TIMEOUT
                try:
                    self._read_memory_frame(self._template)
                except errors.RadioError as e:
                    LOG.debug('No answer at %i baud: %s', baud, e)
                    continue
                LOG.info('Detected %i baud', baud)
                self._baud_detected = True
                return
        finally:
            self.pipe.timeout = oldtimeout

        raise errors.NoResponseError('Unable to communicate with the radio')

    def _resolve_number(self, number):
        return number, ''

    def get_memory(self, number):
        number, extd_number = self._resolve_number(number)
        LOG.debug("Getting %s", extd_number or number)
        self._detect_baudrate()
        f = self._read_memory_frame(number)

        if f.is_empty():
            mem = rig_common.Memory(number, empty=True)
        else:
            mem = f.decode(self._MODES, self._valid_tmodes,
                           self._valid_duplexes)
            mem.number = number
        mem.extd_number = extd_number
        return mem

    def set_memory(self, mem):
        if mem.extd_number:
            number, _extd = self._resolve_number(mem.extd_number)
        else:
            number, _extd = self._resolve_number(mem.number)
        LOG.debug("Setting %s(%s)", number, mem.extd_number)
        self._detect_baudrate()

        f = self._make_frame(number)
        if mem.empty:
            f.make_empty()
        else:
            f.encode(mem, self._MODES, self._valid_tmodes,
                     self._valid_duplexes)

        self._send_frame(f)
        self._check_ack(self._recv_frame())

    def get_raw_memory(self, number):
        number, _extd = self._resolve_number(number)
        self._detect_baudrate()
        f = self._read_memory_frame(number)
        return util.hexprint(f.get_data())


@directory.register
class Icom9700Radio(IcomCIVRadio):
    """Icom IC-9700"""
    MODEL = 'IC-9700'
    _model = '\xA2'
    _template = 100
    _frame_class = IC9700MemFrame

    BANDS = {
        1: (144, 148),
        2: (430, 450),
        3: (1240, 1300),
    }

    _MODES = [
        "LSB", "USB", "AM", "CW", "RTTY",
        "FM", "CWR", "RTTYR", None, None,
        None, None, None, None, None,
        None, None, "DV", None, None,
        None, None, "DD", None, None,
        None, None, None,
    ]

    def get_features(self):
        rf = rig_common.RadioFeatures()
        rf.has_sub_devices = True
        rf.has_bank = False
        rf.has_dv = True
        rf.memory_bounds = (1, 99)
        rf.valid_bands = [(rig_common.to_MHz(lo), rig_common.to_MHz(hi))
                          for lo, hi in self.BANDS.values()]
        rf.valid_modes = [x for x in self._MODES if x]
        return rf

    def get_sub_devices(self):
        return [Icom9700RadioBand(self, band) for band in self.BANDS]

    def get_memory(self, number):
        raise errors.UnsupportedOperationError(
            'Memories live on the band sub-devices of the %s' % self.MODEL)

    def set_memory(self, mem):
        raise errors.UnsupportedOperationError(
            'Memories live on the band sub-devices of the %s' % self.MODEL)

    def get_raw_memory(self, number):
        raise errors.UnsupportedOperationError(
            'Memories live on the band sub-devices of the %s' % self.MODEL)


class Icom9700RadioBand(Icom9700Radio):
    """One band of an IC-9700, with its own bank of channels"""
    _SPECIAL_CHANNELS = {
        "1A": 100,
        "1B": 101,
        "2A": 102,
        "2B": 103,
        "3A": 104,
        "4B": 105,
        "C1": 106,
        "C2": 107,
    }
    _SPECIAL_CHANNELS_REV = {v: k for k, v in _SPECIAL_CHANNELS.items()}

    def __init__(self, parent, band):
        super().__init__(parent.pipe)
        self._parent = parent
        self._bank = band
        self.VARIANT = '%i band' % self.BANDS[band][0]

    def _ensure_echo(self):
        # Echo is a property of the interface, so it is found only once
        self._parent._ensure_echo()
        self._willecho = self._parent._willecho

    def _detect_baudrate(self):
        self._parent._detect_baudrate()

    def get_features(self):
        rf = super().get_features()
        rf.has_sub_devices = False
        rf.valid_tmodes = list(self._valid_tmodes) + ['Cross']
        rf.valid_cross_modes = list(IC9700_CROSS_MODES)
        rf.has_cross = True
        rf.valid_duplexes = list(self._valid_duplexes)
        rf.has_dtcs_polarity = True
        rf.has_ctone = True
        rf.has_tuning_step = False
        rf.has_nostep_tuning = True
        rf.can_odd_split = False
        rf.valid_bands = [(rig_common.to_MHz(self.BANDS[self._bank][0]),
                           rig_common.to_MHz(self.BANDS[self._bank][1]))]
        rf.valid_characters = (rig_common.CHARSET_ALPHANUMERIC +
                               '!#$%&\\?"\'`^+-*/.,:=<>()[]{}|_~@')
        rf.valid_name_length = 16
        rf.valid_skips = []
        rf.valid_special_chans = sorted(self._SPECIAL_CHANNELS.keys())
        if self._bank != 3:
            rf.valid_modes.remove('DD')
        return rf

    def _resolve_number(self, number):
        if isinstance(number, str):
            try:
                return self._SPECIAL_CHANNELS[number], number
            except KeyError:
                raise errors.InvalidMemoryLocation(
                    'Unknown special channel %r' % number)
        if 1 <= number <= 99:
            return number, ''
        try:
            return number, self._SPECIAL_CHANNELS_REV[number]
        except KeyError:
            raise errors.InvalidMemoryLocation(
                'Memory %i is out of range' % number)

    def get_memory(self, number):
        mem = IcomCIVRadio.get_memory(self, number)
        if mem.extd_number:
            mem.immutable = ['empty']
        return mem

    def set_memory(self, mem):
        IcomCIVRadio.set_memory(self, mem)

    def get_raw_memory(self, number):
        return IcomCIVRadio.get_raw_memory(self, number)
