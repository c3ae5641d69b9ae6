# Copyright 2019 Dan Smith <dsmith@danplanet.com>
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

import itertools
import logging
import struct
import sys
import time

from rigclone import bitwise
from rigclone import rig_common
from rigclone import directory
from rigclone import errors
from rigclone import memmap
from rigclone import serialtrace
from rigclone import util

LOG = logging.getLogger(__name__)

CALL_CHANS = ['VHF Call (A)',
              'VHF Call (D)',
              '220M Call (A)',
              '220M Call (D)',
              'UHF Call (A)',
              'UHF Call (D)']

# This is the order of special channels in memory directly after
# regular memory #999
EXTD_NUMBERS = list(itertools.chain(
    ['%s%02i' % (i % 2 and 'Upper' or 'Lower', i // 2) for i in range(100)],
    ['Priority'],
    ['WX%i' % (i + 1) for i in range(10)],
    [None for i in range(20)],  # 20-channel buffer?
    [CALL_CHANS[i] for i in range(len(CALL_CHANS))]))

D74_FILE_HEADER = (
    b'MCP-D74\xFFV1.03\xFF\xFF\xFF' +
    b'TH-D74' + (b'\xFF' * 10) +
    b'\x00' + (b'\xFF' * 15) +
    b'\xFF' * (5 * 16) +
    b'K2' + (b'\xFF' * 14) +
    b'\xFF' * (7 * 16))
D74_FILE_OFFSET = 0x100

# Memory layout:
#
# #seekto 0x2000;
# struct {
#   u8 used;          /* 0xFF: empty, else band 0/1/2 */
#   u8 unknown1:7,
#      lockout:1;
#   u8 group;
#   u8 unknownFF;
# } flags[1200];
#
# #seekto 0x4000;
# struct {
#   struct memory memories[6];   /* 40 bytes each */
#   u8 pad[16];
# } memgroups[192];
#
# struct {
#   char name[16];
# } names[1200];                 /* directly after memgroups, 0x10000 */
FLAGS_BASE = 0x2000
FLAGS_SIZE = 4
MEMORY_BASE = 0x4000
RECORD_SIZE = 40
GROUP_SIZE = 6
GROUP_PAD = 16
GROUP_STRIDE = GROUP_SIZE * RECORD_SIZE + GROUP_PAD
NAMES_BASE = 0x10000
NAME_SIZE = 16

# struct memory {
#   ul32 freq;                       /* 0 */
#   ul32 offset;                     /* 4 */
#   u8 tuning_step:4,                /* 8 */
#      split_tuning_step:3,
#      unknown2:1;
#   u8 unknown3_0:1,                 /* 9 */
#      mode:3,
#      narrow:1,
#      fine_mode:1,
#      fine_step:2;
#   u8 tone_mode:1,                  /* 10 */
#      ctcss_mode:1,
#      dtcs_mode:1,
#      cross_mode:1,
#      unknown4_0:1,
#      split:1,
#      duplex:2;
#   u8 rtone;                        /* 11 */
#   u8 unknownctone:2,               /* 12 */
#      ctone:6;
#   u8 unknowndtcs:1,                /* 13 */
#      dtcs_code:7;
#   u8 unknown5_1:2,                 /* 14 */
#      cross_mode_mode:2,
#      unknown5_2:2,
#      dig_squelch:2;
#   char dv_urcall[8];               /* 15 */
#   char dv_rpt1call[8];             /* 23 */
#   char dv_rpt2call[8];             /* 31 */
#   u8 unknown9:1,                   /* 39 */
#      dv_code:7;
# };
FREQ = 0
OFFSET = 4
URCALL = 15
RPT1CALL = 23
RPT2CALL = 31
CALL_SIZE = 8

# name: (byte, shift, width)
FIELDS = {
    'tuning_step': (8, 4, 4),
    'split_tuning_step': (8, 1, 3),
    'mode': (9, 4, 3),
    'narrow': (9, 3, 1),
    'tone_mode': (10, 7, 1),
    'ctcss_mode': (10, 6, 1),
    'dtcs_mode': (10, 5, 1),
    'cross_mode': (10, 4, 1),
    'split': (10, 2, 1),
    'duplex': (10, 0, 2),
    'rtone': (11, 0, 8),
    'ctone': (12, 0, 6),
    'dtcs_code': (13, 0, 7),
    'cross_mode_mode': (14, 4, 2),
    'dig_squelch': (14, 0, 2),
    'dv_code': (39, 0, 7),
}

DUPLEX = ['', '+', '-']
TUNE_STEPS = [5.0, 6.25, 8.33, 9.0, 10.0, 12.5, 15.0, 20.0, 25.0, 30.0, 50.0,
              100.0]
CROSS_MODES = ['DTCS->', 'Tone->DTCS', 'DTCS->Tone', 'Tone->Tone']
MODES = ['FM', 'DV', 'AM', 'LSB', 'USB', 'CW', 'NFM',
         'DV',  # Actually DR in the radio
         ]

BLOCK_SIZE = 256
ACK = b'\x06'
BAUDS = [9600, 19200, 38400, 57600]
PROGRAM_BAUD = 57600
# The radio answers "?" to a command it did not understand, which happens
# when it is still digesting the wake sequence
CONFUSED = '?'
ID_RETRIES = 3


def record_offset(number):
    """Return the image offset of the raw record for memory @number"""
    return (MEMORY_BASE + (number // GROUP_SIZE) * GROUP_STRIDE +
            (number % GROUP_SIZE) * RECORD_SIZE)


def flags_offset(number):
    return FLAGS_BASE + number * FLAGS_SIZE


def name_offset(number):
    return NAMES_BASE + number * NAME_SIZE


def decode_call(call):
    return bitwise.get_string(call, null_terminated=True)


def encode_call(call):
    return bitwise.put_string(call, CALL_SIZE, pad=b'\x00',
                              field='callsign')


def get_used_flag(mem):
    if mem.empty:
        return 0xFF
    if mem.duplex == 'split':
        freq = mem.offset
    else:
        freq = mem.freq

    if freq < rig_common.to_MHz(150):
        return 0x00
    elif freq < rig_common.to_MHz(400):
        return 0x01
    else:
        return 0x02


@directory.register
class THD74Radio(rig_common.CloneModeRadio):
    """Kenwood TH-D74"""
    VENDOR = "Kenwood"
    MODEL = "TH-D74 (clone mode)"
    BAUD_RATE = 9600
    HARDWARE_FLOW = sys.platform == "darwin"  # only OS X driver needs hw flow
    SETTLE_DELAY = 0.1

    _memsize = 0x7A300

    def _send(self, data, what):
        serialtrace.write_all(self.pipe, data, what)

    def read_block(self, block, count=BLOCK_SIZE):
        hdr = struct.pack(">cHH", b"R", block, 0)
        self._send(hdr, 'block %i request' % block)
        r = serialtrace.read_exact(self.pipe, 5, 'block %i header' % block)

        cmd, _block, _size = struct.unpack(">cHH", r)
        if cmd != b"W":
            raise errors.InvalidResponseError(
                "Block %i: expected response type %r, got %r" % (
                    block, b"W", cmd))
        if _block != block:
            raise errors.InvalidResponseError(
                "Expected block %i, radio sent block %i" % (block, _block))

        data = serialtrace.read_exact(self.pipe, count, 'block %i' % block)

        self._send(ACK, 'block %i ack' % block)
        self._check_ack('block %i' % block)
        return data

    def _check_ack(self, what):
        ack = serialtrace.read_some(self.pipe, 1, what)
        if not ack:
            raise errors.RadioTimeoutError("No ACK for %s" % what)
        elif ack != ACK:
            raise errors.RadioNakError("Radio sent %r instead of ACK for %s" %
                                       (ack, what))

    def write_block(self, block, map, size=BLOCK_SIZE):
        hdr = struct.pack(">cHH", b"W", block, size < 256 and size or 0)
        base = block * size
        data = map[base:base + size]
        self._send(hdr + data, 'block %i' % block)
        self.pipe.flush()
        self._check_ack('block %i' % block)

    def _enter_program_mode(self):
        reply = self.command("0M PROGRAM")
        if not reply:
            raise errors.NoResponseError("No response to program mode entry")
        elif reply != "0M":
            raise errors.InvalidResponseError(
                "Expected 0M entering program mode, got %r" % reply)

        # The radio switches speed as soon as it answers and does not wait
        # for us
        self.pipe.baudrate = PROGRAM_BAUD
        time.sleep(self.SETTLE_DELAY)
        self.pipe.reset_input_buffer()
        self.pipe.reset_output_buffer()

    def _exit_program_mode(self):
        try:
            self._send(b"E", 'program mode exit')
        except errors.RadioError as e:
            LOG.warning('Failed to exit program mode: %s', e)

    def download(self):
        self._enter_program_mode()

        blocks = range(self._memsize // BLOCK_SIZE)
        LOG.debug("reading blocks %d..%d" % (blocks[0], blocks[-1]))
        status = rig_common.Status()
        status.msg = "Cloning from radio"
        status.max = len(blocks)

        data = b""
        try:
            for i in blocks:
                data += self.read_block(i)
                status.cur = i + 1
                self.status_fn(status)
        finally:
            self._exit_program_mode()

        return memmap.MemoryMapBytes(data)

    def upload(self):
        # The last two blocks hold radio identity and are never written
        blocks = range((self._memsize // BLOCK_SIZE) - 2)

        self._enter_program_mode()

        status = rig_common.Status()
        status.msg = "Cloning to radio"
        status.max = len(blocks)
        try:
            LOG.debug("writing blocks %d..%d" % (blocks[0], blocks[-1]))
            for i in blocks:
                self.write_block(i, self._mmap)
                status.cur = i + 1
                self.status_fn(status)
        finally:
            self._exit_program_mode()

    def command(self, cmd):
        """Send @cmd and return the reply line, or "" if none arrives
        before the port times out"""
        LOG.debug("PC->D74: %s" % cmd)
        self._send((cmd + "\r").encode(), 'command %s' % cmd)
        data = b""
        while not data.endswith(b"\r"):
            char = serialtrace.read_some(self.pipe, 1, 'reply to %s' % cmd)
            if not char:
                break
            data += char
        LOG.debug("D74->PC: %s" % data.strip())
        return data.decode(errors='replace').strip()

    def _wake(self):
        self.pipe.reset_input_buffer()
        self._send(b"\r\r", 'wake sequence')
        serialtrace.read_some(self.pipe, 32, 'wake reply')

    def get_id(self):
        """Return the radio's model string, retrying if it is confused"""
        for attempt in range(ID_RETRIES):
            self._wake()
            r = self.command("ID")
            if r.startswith("ID "):
                return r.split(" ")[1]
            elif r != CONFUSED:
                break
            LOG.debug('Radio did not understand ID (attempt %i)',
                      attempt + 1)
        raise errors.NoResponseError("No response to ID command")

    def _detect_baud(self):
        for baud in BAUDS:
            self.pipe.baudrate = baud
            try:
                id = self.get_id()
            except errors.NoResponseError:
                continue
            LOG.info("Radio %s at %i baud" % (id, baud))
            if not self.MODEL.startswith(id):
                raise errors.RadioError('Unsupported model %r' % id)
            return id

        raise errors.NoResponseError("No response from radio")

    def process_mmap(self):
        if len(self._mmap) < self._memsize:
            LOG.warning('Image is 0x%x bytes, expected 0x%x',
                        len(self._mmap), self._memsize)

    def sync_in(self):
        self._detect_baud()
        self._mmap = self.download()
        self.process_mmap()

    def sync_out(self):
        self._detect_baud()
        self.upload()

    def load_mmap(self, filename):
        if filename.lower().endswith('.d74'):
            with open(filename, 'rb') as f:
                f.seek(D74_FILE_OFFSET)
                self._mmap = memmap.MemoryMapBytes(f.read())
                LOG.info('Loaded MCP d74 file at offset 0x100')
            self.process_mmap()
        else:
            rig_common.CloneModeRadio.load_mmap(self, filename)

    def save_mmap(self, filename):
        if filename.lower().endswith('.d74'):
            with open(filename, 'wb') as f:
                f.write(D74_FILE_HEADER)
                f.write(self._mmap.get_packed())
                LOG.info('Wrote MCP d74 file')
        else:
            rig_common.CloneModeRadio.save_mmap(self, filename)

    def get_features(self):
        rf = rig_common.RadioFeatures()
        rf.valid_tuning_steps = list(TUNE_STEPS)
        rf.valid_tmodes = ['', 'Tone', 'TSQL', 'DTCS', 'Cross']
        rf.valid_cross_modes = list(CROSS_MODES)
        rf.valid_duplexes = DUPLEX + ['split']
        rf.valid_skips = ['', 'S']
        rf.valid_modes = sorted(set(MODES))
        rf.valid_characters = rig_common.CHARSET_ASCII
        rf.valid_name_length = 16
        rf.valid_bands = [(100000, 470000000)]
        rf.valid_special_chans = [x for x in EXTD_NUMBERS if x]
        rf.has_cross = True
        rf.has_dtcs_polarity = False
        rf.has_bank = False
        rf.has_dv = True
        rf.can_odd_split = True
        rf.requires_call_lists = False
        rf.memory_bounds = (0, 999)
        return rf

    def _resolve_number(self, number):
        """Return (number, extd_number) for a memory number or special
        channel name"""
        if isinstance(number, str):
            try:
                return 1000 + EXTD_NUMBERS.index(number), number
            except ValueError:
                raise errors.InvalidMemoryLocation(
                    'Unknown special channel %r' % number)
        if 0 <= number <= 999:
            return number, ''
        elif (1000 <= number < 1000 + len(EXTD_NUMBERS) and
                EXTD_NUMBERS[number - 1000]):
            return number, EXTD_NUMBERS[number - 1000]
        raise errors.InvalidMemoryLocation(
            'Memory %i is out of range' % number)

    def _get_raw_memory(self, number):
        # Why Kenwood ... WHY?
        return self._mmap.get(record_offset(number), RECORD_SIZE)

    def _get_raw_flags(self, number):
        return self._mmap.get(flags_offset(number), FLAGS_SIZE)

    def _name_number(self, number, extd_number):
        if 'Call' in extd_number:
            return number + 5
        return number

    def get_memory(self, number):
        number, extd_number = self._resolve_number(number)

        _flg = self._get_raw_flags(number)
        if _flg[0] == 0xFF:
            mem = rig_common.Memory(number, empty=True)
            mem.extd_number = extd_number
            if extd_number:
                mem.immutable = ['empty']
            return mem

        _mem = self._get_raw_memory(number)
        mode = bitwise.lookup(MODES, bitwise.get_field(_mem, FIELDS['mode']),
                              'mode')

        if mode == 'DV':
            mem = rig_common.DVMemory()
        else:
            mem = rig_common.Memory()

        mem.number = number
        mem.extd_number = extd_number

        def field(name, table=None):
            value = bitwise.get_field(_mem, FIELDS[name], name)
            if table is not None:
                return bitwise.lookup(table, value, name)
            return value

        mem.freq = bitwise.read_int('ul32', _mem[FREQ:], 'freq')
        _nam = self._mmap.get(
            name_offset(self._name_number(number, extd_number)), NAME_SIZE)
        mem.name = bitwise.get_string(_nam)
        mem.offset = bitwise.read_int('ul32', _mem[OFFSET:], 'offset')
        if field('split'):
            mem.duplex = 'split'
        else:
            mem.duplex = field('duplex', DUPLEX)
        mem.tuning_step = field('tuning_step', TUNE_STEPS)
        mem.mode = mode
        mem.rtone = field('rtone', rig_common.TONES)
        mem.ctone = field('ctone', rig_common.TONES)
        mem.dtcs = field('dtcs_code', rig_common.DTCS_CODES)

        if mem.mode == 'DV':
            # Tone squelch is not used on digital channels
            mem.tmode = ''
        elif field('tone_mode'):
            mem.tmode = 'Tone'
        elif field('ctcss_mode'):
            mem.tmode = 'TSQL'
        elif field('dtcs_mode'):
            mem.tmode = 'DTCS'
        elif field('cross_mode'):
            mem.tmode = 'Cross'
            mem.cross_mode = field('cross_mode_mode', CROSS_MODES)
        else:
            mem.tmode = ''

        mem.skip = _flg[1] & 0x01 and 'S' or ''

        if mem.mode == 'DV':
            mem.dv_urcall = decode_call(_mem[URCALL:URCALL + CALL_SIZE])
            mem.dv_rpt1call = decode_call(_mem[RPT1CALL:RPT1CALL + CALL_SIZE])
            mem.dv_rpt2call = decode_call(_mem[RPT2CALL:RPT2CALL + CALL_SIZE])
            mem.dv_code = field('dv_code')

        if mem.extd_number:
            mem.immutable.append('empty')

        if 'WX' in mem.extd_number:
            mem.tmode = ''
            mem.immutable.extend(['rtone', 'ctone', 'dtcs', 'rx_dtcs',
                                  'tmode', 'cross_mode', 'dtcs_polarity',
                                  'skip', 'power', 'offset', 'mode',
                                  'tuning_step'])
        if 'Call' in mem.extd_number and mem.mode == 'DV':
            mem.immutable.append('mode')

        return mem

    def encode_memory(self, mem):
        """Return the raw 40-byte record for @mem"""
        _mem = bytearray(RECORD_SIZE)

        def field(name, value, table=None):
            if table is not None:
                value = bitwise.index_of(table, value, name)
            bitwise.set_field(_mem, FIELDS[name], int(value), name)

        _mem[FREQ:FREQ + 4] = bitwise.write_int('ul32', mem.freq, 'freq')
        _mem[OFFSET:OFFSET + 4] = bitwise.write_int('ul32', int(mem.offset),
                                                    'offset')
        if mem.duplex == 'split':
            field('split', True)
            field('duplex', 0)
            field('split_tuning_step',
                  rig_common.required_step(mem.offset), TUNE_STEPS)
        else:
            field('split', False)
            field('duplex', mem.duplex, DUPLEX)
        field('tuning_step', mem.tuning_step, TUNE_STEPS)
        field('mode', mem.mode, MODES)
        field('narrow', mem.mode == 'NFM')
        field('rtone', mem.rtone, rig_common.TONES)
        field('ctone', mem.ctone, rig_common.TONES)
        field('dtcs_code', mem.dtcs, rig_common.DTCS_CODES)

        field('tone_mode', mem.tmode == 'Tone')
        field('ctcss_mode', mem.tmode == 'TSQL')
        field('dtcs_mode', mem.tmode == 'DTCS')
        field('cross_mode', mem.tmode == 'Cross')

        if mem.tmode == 'Cross':
            field('cross_mode_mode', mem.cross_mode, CROSS_MODES)

        if isinstance(mem, rig_common.DVMemory):
            _mem[URCALL:URCALL + CALL_SIZE] = encode_call(mem.dv_urcall)
            _mem[RPT1CALL:RPT1CALL + CALL_SIZE] = encode_call(
                mem.dv_rpt1call)
            _mem[RPT2CALL:RPT2CALL + CALL_SIZE] = encode_call(
                mem.dv_rpt2call)
            field('dv_code', mem.dv_code)

        return bytes(_mem)

    def set_memory(self, mem):
        if mem.extd_number:
            number, extd_number = self._resolve_number(mem.extd_number)
        else:
            number, extd_number = self._resolve_number(mem.number)

        _flg = bytearray(self._get_raw_flags(number))
        name_pos = name_offset(self._name_number(number, extd_number))

        if mem.empty:
            _flg[0] = 0xFF
            _flg[1] = bitwise.set_bits(_flg[1], 0, 1, 0)
            _flg[2] = 0
            self._mmap.set(flags_offset(number), bytes(_flg))
            self._mmap.set(name_pos, b'\x00' * NAME_SIZE)
            self._mmap.set(record_offset(number), b'\xFF' * RECORD_SIZE)
            return

        # Encode everything before touching the image so a bad value
        # leaves the memory as it was
        raw = self.encode_memory(mem)
        name = bitwise.put_string(mem.name, NAME_SIZE, field='name')

        _flg[0] = get_used_flag(mem)
        _flg[1] = bitwise.set_bits(_flg[1], 0, 1, int(mem.skip == 'S'))
        self._mmap.set(flags_offset(number), bytes(_flg))
        self._mmap.set(name_pos, name)
        self._mmap.set(record_offset(number), raw)

    def get_raw_memory(self, number):
        number, _extd = self._resolve_number(number)
        return (util.hexprint(self._get_raw_memory(number)) +
                util.hexprint(self._get_raw_flags(number)))

    @classmethod
    def match_model(cls, filedata, filename):
        if filename.lower().endswith('.d74'):
            return True
        else:
            return super().match_model(filedata, filename)


@directory.register
class THD75Radio(THD74Radio):
    """Kenwood TH-D75"""
    MODEL = 'TH-D75'
