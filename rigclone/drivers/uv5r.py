# Copyright 2012 Dan Smith <dsmith@danplanet.com>
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
import time

from rigclone import bitwise
from rigclone import rig_common
from rigclone import directory
from rigclone import errors
from rigclone import memmap
from rigclone import serialtrace
from rigclone import util

LOG = logging.getLogger(__name__)

# #seekto 0x0008;
# struct {
#   lbcd rxfreq[4];    /* 0 */
#   lbcd txfreq[4];    /* 4 */
#   ul16 rxtone;       /* 8 */
#   ul16 txtone;       /* 10 */
#   u8 unused1:3,      /* 12 */
#      isuhf:1,
#      scode:4;
#   u8 unknown1:7,     /* 13 */
#      txtoneicon:1;
#   u8 mailicon:3,     /* 14 */
#      unknown2:3,
#      lowpower:2;
#   u8 unknown3:1,     /* 15 */
#      wide:1,
#      unknown4:2,
#      bcl:1,
#      scan:1,
#      pttid:2;
# } memory[128];
#
# #seekto 0x1008;
# struct {
#   char name[7];
#   u8 unknown2[9];
# } names[128];
MEMORY_BASE = 0x0008
RECORD_SIZE = 16
NAMES_BASE = 0x1008
NAME_STRIDE = 16
NAME_LENGTH = 7
RXFREQ = 0
TXFREQ = 4
RXTONE = 8
TXTONE = 10

FIELDS = {
    'isuhf': (12, 4, 1),
    'scode': (12, 0, 4),
    'lowpower': (14, 0, 2),
    'wide': (15, 6, 1),
    'bcl': (15, 3, 1),
    'scan': (15, 2, 1),
    'pttid': (15, 0, 2),
}

UV5R_MODEL_ORIG = b"\x50\xBB\xFF\x01\x25\x98\x4D"
UV5R_MODEL_291 = b"\x50\xBB\xFF\x20\x12\x07\x25"

ACK = b"\x06"
IDENT_END = b"\xDD"
BLOCK_SIZE = 0x40
UPLOAD_BLOCK_SIZE = 0x10
MAIN_SIZE = 0x1800
IDENT_SIZE = 8
MAGIC_DELAY = 0.01
IDENT_RETRY_DELAY = 2

# Image ranges written on upload; the gaps hold calibration data
UPLOAD_RANGES = [
    (0x0008, 0x0CF8),
    (0x0D08, 0x0DF8),
    (0x0E08, 0x1808),
]

TX_INHIBIT = b"\xFF\xFF\xFF\xFF"
NO_TONE = (0, 0xFFFF)
TONE_BASE = 0x0258
DTCS_REVERSED = 0x69

UV5R_POWER_LEVELS = [rig_common.PowerLevel("High", watts=4.00),
                     rig_common.PowerLevel("Low", watts=1.00)]

UV5R_DTCS = tuple(sorted(rig_common.DTCS_CODES + (645,)))

UV5R_CHARSET = rig_common.CHARSET_UPPER_NUMERIC + \
    "!@#$%^&*()+-=[]:\";'<>?,./"


def _do_status(radio, direction, addr):
    status = rig_common.Status()
    status.msg = "Cloning %s radio" % direction
    status.cur = addr
    status.max = radio.get_memsize()
    radio.status_fn(status)


def _do_ident(radio, magic):
    serial = radio.pipe

    LOG.info("Sending Magic: %s" % util.hexprint(magic))
    for byte in magic:
        serialtrace.write_all(serial, bytes([byte]), 'magic')
        time.sleep(MAGIC_DELAY)
    ack = serialtrace.read_some(serial, 1, 'magic ack')

    if ack != ACK:
        if ack:
            LOG.debug(repr(ack))
        raise errors.NoResponseError("Radio did not respond to magic")

    serialtrace.write_all(serial, b"\x02", 'ident request')

    # The ident is 8 bytes on most radios and 12 on some, always
    # ending with 0xDD
    response = b""
    for i in range(12):
        byte = serialtrace.read_some(serial, 1, 'ident')
        if not byte:
            break
        response += byte
        if byte == IDENT_END:
            break

    if len(response) == 12:
        ident = (bytes([response[0], response[3], response[5]]) +
                 response[7:])
    elif len(response) == IDENT_SIZE:
        ident = response
    else:
        LOG.debug("Unexpected ident:\n%s", util.hexprint(response))
        raise errors.InvalidResponseError(
            "Unexpected ident of %i bytes from radio" % len(response))
    LOG.debug("Ident:\n%s", util.hexprint(ident))

    serialtrace.write_all(serial, ACK, 'ident ack')
    ack = serialtrace.read_some(serial, 1, 'ident ack')
    if not ack:
        raise errors.RadioTimeoutError("No ACK for ident")
    elif ack != ACK:
        raise errors.RadioNakError("Radio refused clone")

    return ident


def _ident_radio(radio):
    error = None
    for magic in radio._idents:
        try:
            return _do_ident(radio, magic)
        except errors.SerialError:
            # The port itself failed, so another magic will not help
            raise
        except errors.RadioError as e:
            LOG.error("Ident with magic %s failed: %s",
                      util.hexprint(magic).strip(), e)
            error = e
            time.sleep(IDENT_RETRY_DELAY)

    if isinstance(error, errors.NoResponseError):
        raise errors.RadioNoContactLikelyK1()
    raise error


def _read_block(radio, start, size):
    msg = struct.pack(">BHB", ord("S"), start, size)
    serialtrace.write_all(radio.pipe, msg, 'block 0x%04x request' % start)

    what = 'block 0x%04x header' % start
    answer = serialtrace.read_exact(radio.pipe, 4, what)
    if answer[:1] == ACK:
        # The ACK for the previous block, which most radios send here
        answer = answer[1:] + serialtrace.read_exact(radio.pipe, 1, what)

    cmd, addr, length = struct.unpack(">BHB", answer)
    if cmd != ord("X") or addr != start or length != size:
        LOG.error("Invalid answer for block 0x%04x:" % start)
        LOG.debug("CMD: %s  ADDR: %04x  SIZE: %02x" % (cmd, addr, length))
        raise errors.InvalidResponseError(
            "Expected block 0x%04x of %i bytes, radio sent 0x%04x of %i" % (
                start, size, addr, length))

    chunk = serialtrace.read_exact(radio.pipe, size,
                                   'block 0x%04x' % start)

    serialtrace.write_all(radio.pipe, ACK, 'block 0x%04x ack' % start)
    return chunk


def _send_block(radio, addr, data):
    msg = struct.pack(">BHB", ord("X"), addr, len(data))
    serialtrace.write_all(radio.pipe, msg + data, 'block 0x%04x' % addr)

    ack = serialtrace.read_some(radio.pipe, 1,
                                 'block 0x%04x ack' % addr)
    if not ack:
        raise errors.RadioTimeoutError("No ACK for block 0x%04x" % addr)
    elif ack != ACK:
        raise errors.RadioNakError(
            "Radio refused to accept block 0x%04x" % addr)


def _do_download(radio):
    data = _ident_radio(radio)

    LOG.debug("downloading main block...")
    for i in range(0, MAIN_SIZE, BLOCK_SIZE):
        data += _read_block(radio, i, BLOCK_SIZE)
        _do_status(radio, "from", i + BLOCK_SIZE + IDENT_SIZE)
    LOG.debug("done.")

    return memmap.MemoryMapBytes(data)


def _do_upload(radio):
    _ident_radio(radio)

    mmap = radio.get_mmap()
    for start_addr, end_addr in UPLOAD_RANGES:
        for i in range(start_addr, end_addr, UPLOAD_BLOCK_SIZE):
            _send_block(radio, i - IDENT_SIZE,
                        mmap.get(i, UPLOAD_BLOCK_SIZE))
            _do_status(radio, "to", i + UPLOAD_BLOCK_SIZE)


def _decode_tone(value, field):
    if value in NO_TONE:
        return '', None, None
    elif value >= TONE_BASE:
        return 'Tone', value / 10.0, None
    elif value > DTCS_REVERSED:
        return 'DTCS', bitwise.lookup(UV5R_DTCS, value - DTCS_REVERSED - 1,
                                      field), 'R'
    else:
        return 'DTCS', bitwise.lookup(UV5R_DTCS, value - 1, field), 'N'


def _encode_tone(tone, field):
    mode, value, pol = tone
    if mode == 'Tone':
        return int(round(value * 10))
    elif mode == 'DTCS':
        code = bitwise.index_of(UV5R_DTCS, value, field) + 1
        if pol == 'R':
            code += DTCS_REVERSED
        return code
    return 0


@directory.register
class BaofengUV5R(rig_common.CloneModeRadio):
    """Baofeng UV-5R"""
    VENDOR = "Baofeng"
    MODEL = "UV-5R"
    BAUD_RATE = 9600

    _memsize = 0x1808
    _idents = [UV5R_MODEL_291,
               UV5R_MODEL_ORIG
               ]
    _vhf_range = (136000000, 174000000)
    _uhf_range = (400000000, 520000000)

    def get_features(self):
        rf = rig_common.RadioFeatures()
        rf.has_bank = False
        rf.has_cross = True
        rf.has_rx_dtcs = True
        rf.has_tuning_step = False
        rf.can_odd_split = True
        rf.valid_name_length = NAME_LENGTH
        rf.valid_characters = UV5R_CHARSET
        rf.valid_skips = ["", "S"]
        rf.valid_tmodes = ["", "Tone", "TSQL", "DTCS", "Cross"]
        rf.valid_cross_modes = ["Tone->Tone", "Tone->DTCS", "DTCS->Tone",
                                "->Tone", "->DTCS", "DTCS->", "DTCS->DTCS"]
        rf.valid_power_levels = UV5R_POWER_LEVELS
        rf.valid_duplexes = ["", "-", "+", "split", "off"]
        rf.valid_modes = ["FM", "NFM"]
        rf.valid_dtcs_codes = UV5R_DTCS
        rf.valid_bands = [self._vhf_range, self._uhf_range]
        rf.memory_bounds = (0, 127)
        return rf

    def sync_in(self):
        self._mmap = _do_download(self)
        self.process_mmap()

    def sync_out(self):
        _do_upload(self)

    def _check_number(self, number):
        if not isinstance(number, int) or not 0 <= number <= 127:
            raise errors.InvalidMemoryLocation(
                'Memory %r is out of range' % (number,))

    def _get_mem(self, number):
        return self._mmap.get(MEMORY_BASE + number * RECORD_SIZE,
                              RECORD_SIZE)

    def _get_nam(self, number):
        return self._mmap.get(NAMES_BASE + number * NAME_STRIDE,
                              NAME_LENGTH)

    def get_raw_memory(self, number):
        self._check_number(number)
        return util.hexprint(self._get_mem(number))

    def get_memory(self, number):
        self._check_number(number)
        _mem = self._get_mem(number)
        _nam = self._get_nam(number)

        mem = rig_common.Memory()
        mem.number = number

        if _mem[:1] == b"\xff":
            mem.empty = True
            return mem

        rxfreq = bitwise.bcd_to_int(_mem[RXFREQ:RXFREQ + 4], False, 'rxfreq')
        if _mem[TXFREQ:TXFREQ + 4] == TX_INHIBIT:
            mem.freq = rxfreq * 10
            mem.duplex = "off"
            mem.offset = 0
        else:
            txfreq = bitwise.bcd_to_int(_mem[TXFREQ:TXFREQ + 4], False,
                                        'txfreq')
            rig_common.split_to_offset(mem, rxfreq * 10, txfreq * 10)

        # The radio's own software may leave 0xFF mid-name
        mem.name = bitwise.get_string(_nam.replace(b"\xFF", b" "))

        txtone = _decode_tone(bitwise.read_int('ul16', _mem[TXTONE:],
                                               'txtone'), 'txtone')
        rxtone = _decode_tone(bitwise.read_int('ul16', _mem[RXTONE:],
                                               'rxtone'), 'rxtone')
        try:
            rig_common.split_tone_decode(mem, txtone, rxtone)
        except ValueError as e:
            raise errors.CodecError(str(e), 'tone')

        def field(name):
            return bitwise.get_field(_mem, FIELDS[name], name)

        if not field('scan'):
            mem.skip = "S"

        mem.power = bitwise.lookup(UV5R_POWER_LEVELS, field('lowpower'),
                                   'lowpower')
        mem.mode = field('wide') and "FM" or "NFM"

        return mem

    def set_memory(self, mem):
        self._check_number(mem.number)
        mem_pos = MEMORY_BASE + mem.number * RECORD_SIZE
        nam_pos = NAMES_BASE + mem.number * NAME_STRIDE

        if mem.empty:
            self._mmap.set(mem_pos, b"\xff" * RECORD_SIZE)
            self._mmap.set(nam_pos, b"\xff" * NAME_STRIDE)
            return

        old = self._get_mem(mem.number)
        _mem = bytearray(RECORD_SIZE)

        def field(name, value):
            bitwise.set_field(_mem, FIELDS[name], int(value), name)

        if old[:1] != b"\xff":
            # Keep the per-channel settings this model does not expose
            for name in ('isuhf', 'scode', 'bcl', 'pttid'):
                field(name, bitwise.get_field(old, FIELDS[name], name))

        _mem[RXFREQ:RXFREQ + 4] = bitwise.int_to_bcd(mem.freq // 10, 4,
                                                     False, 'rxfreq')
        if mem.duplex == "off":
            _mem[TXFREQ:TXFREQ + 4] = TX_INHIBIT
        else:
            if mem.duplex == "split":
                txfreq = mem.offset
            elif mem.duplex == "+":
                txfreq = mem.freq + mem.offset
            elif mem.duplex == "-":
                txfreq = mem.freq - mem.offset
            else:
                txfreq = mem.freq
            _mem[TXFREQ:TXFREQ + 4] = bitwise.int_to_bcd(txfreq // 10, 4,
                                                         False, 'txfreq')

        txtone, rxtone = rig_common.split_tone_encode(mem)
        _mem[TXTONE:TXTONE + 2] = bitwise.write_int(
            'ul16', _encode_tone(txtone, 'txtone'), 'txtone')
        _mem[RXTONE:RXTONE + 2] = bitwise.write_int(
            'ul16', _encode_tone(rxtone, 'rxtone'), 'rxtone')

        field('scan', mem.skip != "S")
        field('wide', mem.mode == "FM")
        if mem.power:
            field('lowpower', bitwise.index_of(UV5R_POWER_LEVELS, mem.power,
                                               'power'))
        else:
            field('lowpower', 0)

        name = bitwise.put_string(mem.name, NAME_LENGTH, pad=b"\xFF",
                                  field='name')
        self._mmap.set(mem_pos, bytes(_mem))
        self._mmap.set(nam_pos, name)
