# Copyright 2022 Dan Smith <chirp@f.danplanet.com>
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

import os
import struct
import tempfile
from unittest import mock

import serial

from rigclone import errors
from rigclone import memmap
from rigclone import rig_common
from rigclone.drivers import thd74
from tests.unit import base

NAK = b'\x15'


class FakeTHD75Serial:
    """Behaves like a Serial with a TH-D75 connected"""

    def __init__(self, image, baud=9600, model='TH-D75'):
        self.image = memmap.MemoryMapBytes(image)
        self.readbuf = bytearray()
        self.writes = []
        self.baudrate = 9600
        self.radio_baud = baud
        self.model = model
        self.program = False
        self.confused = 0
        self.program_reply = b'0M\r'
        self.bad_index_at = None
        self.short_at = None
        self.nak_at = None
        self.last_block = None
        self.unplug_at = None
        self.unplugged = False

    def _reply(self, data):
        self.readbuf.extend(data)

    def _handle_command(self, data):
        if self.baudrate != self.radio_baud:
            # Garbage at the wrong speed, so no answer
            return
        if data == b'ID\r':
            if self.confused:
                self.confused -= 1
                self._reply(b'?\r')
            else:
                self._reply(b'ID %s\r' % self.model.encode())
        elif data == b'0M PROGRAM\r':
            self._reply(self.program_reply)
            self.program = self.program_reply == b'0M\r'

    def _handle_program(self, data):
        if data == b'E':
            self.program = False
        elif data == thd74.ACK:
            if self.last_block == self.unplug_at:
                self.unplugged = True
            if self.last_block == self.nak_at:
                self._reply(NAK)
            else:
                self._reply(thd74.ACK)
        elif data[:1] == b'R':
            _cmd, block, _size = struct.unpack('>cHH', data[:5])
            self.last_block = block
            chunk = self.image.get(block * thd74.BLOCK_SIZE,
                                   thd74.BLOCK_SIZE)
            if block == self.bad_index_at:
                block += 1
            if block == self.short_at:
                chunk = chunk[:100]
            self._reply(struct.pack('>cHH', b'W', block, 0) + chunk)
        elif data[:1] == b'W':
            _cmd, block, _size = struct.unpack('>cHH', data[:5])
            self.image.set(block * thd74.BLOCK_SIZE, data[5:])
            self._reply(thd74.ACK)

    def write(self, data):
        self.writes.append(bytes(data))
        if data == b'\r\r':
            return
        if self.program:
            self._handle_program(data)
        else:
            self._handle_command(data)

    def read(self, count=1):
        if self.unplugged:
            raise serial.SerialException('device disconnected')
        data = bytes(self.readbuf[:count])
        del self.readbuf[:count]
        return data

    def reset_input_buffer(self):
        self.readbuf = bytearray()

    def reset_output_buffer(self):
        pass

    def flush(self):
        pass


class SmallTHD75(thd74.THD75Radio):
    # Enough blocks to exercise the loop without moving the whole image
    _memsize = thd74.BLOCK_SIZE * 8


def pattern(size):
    return bytes(i % 251 for i in range(size))


@mock.patch('time.sleep')
class TestTHD75Clone(base.BaseTest):
    def _radio(self, fake, rclass=SmallTHD75):
        radio = rclass(fake)
        radio.status_fn = mock.MagicMock()
        return radio

    def test_image_size(self, mock_sleep):
        self.assertEqual(1955, thd74.THD75Radio._memsize // thd74.BLOCK_SIZE)

    def test_download(self, mock_sleep):
        image = pattern(SmallTHD75._memsize)
        fake = FakeTHD75Serial(image)
        radio = self._radio(fake)
        radio.sync_in()
        self.assertEqual(image, radio.get_mmap().get_packed())
        self.assertEqual(thd74.PROGRAM_BAUD, fake.baudrate)
        self.assertEqual(b'E', fake.writes[-1])
        self.assertFalse(fake.program)
        mock_sleep.assert_called_once_with(SmallTHD75.SETTLE_DELAY)

        self.assertEqual(8, radio.status_fn.call_count)
        status = radio.status_fn.call_args[0][0]
        self.assertEqual(8, status.cur)
        self.assertEqual(8, status.max)
        self.assertEqual('Cloning from radio', status.msg)

    def test_download_detects_baud(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize), baud=38400)
        radio = self._radio(fake)
        self.assertEqual('TH-D75', radio._detect_baud())
        self.assertEqual(38400, fake.baudrate)

    def test_id_retries_when_confused(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize))
        fake.confused = thd74.ID_RETRIES - 1
        radio = self._radio(fake)
        self.assertEqual('TH-D75', radio.get_id())
        self.assertEqual(thd74.ID_RETRIES,
                         fake.writes.count(b'ID\r'))

    def test_id_confused_gives_up(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize))
        fake.confused = thd74.ID_RETRIES
        radio = self._radio(fake)
        self.assertRaises(errors.NoResponseError, radio.sync_in)
        self.assertEqual(thd74.ID_RETRIES + len(thd74.BAUDS) - 1,
                         fake.writes.count(b'ID\r'))
        self.assertIsNone(radio.get_mmap())

    def test_no_radio(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize), baud=1200)
        radio = self._radio(fake)
        self.assertRaises(errors.NoResponseError, radio.sync_in)
        self.assertNotIn(b'0M PROGRAM\r', fake.writes)

    def test_wrong_model(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize))
        radio = self._radio(fake, thd74.THD74Radio)
        self.assertRaises(errors.RadioError, radio.sync_in)
        self.assertFalse(fake.program)

    def test_program_mode_refused(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize))
        fake.program_reply = b'N\r'
        radio = self._radio(fake)
        self.assertRaises(errors.InvalidResponseError, radio.sync_in)
        self.assertEqual(9600, fake.baudrate)

    def test_block_index_mismatch(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize))
        fake.bad_index_at = 3
        radio = self._radio(fake)
        with self.assertRaises(errors.InvalidResponseError) as cm:
            radio.sync_in()
        self.assertIn('Expected block 3, radio sent block 4',
                      str(cm.exception))
        self.assertIsNone(radio.get_mmap())
        self.assertEqual(3, radio.status_fn.call_count)
        # Program mode is exited even on failure
        self.assertEqual(b'E', fake.writes[-1])

    def test_read_block_mismatch_appends_nothing(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize))
        fake.bad_index_at = 0
        fake.program = True
        radio = self._radio(fake)
        self.assertRaises(errors.InvalidResponseError, radio.read_block, 0)
        # The payload was never consumed or acknowledged
        self.assertEqual(thd74.BLOCK_SIZE, len(fake.readbuf))
        self.assertNotIn(thd74.ACK, fake.writes)

    def test_short_block(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize))
        fake.short_at = 2
        radio = self._radio(fake)
        with self.assertRaises(errors.RadioTimeoutError) as cm:
            radio.sync_in()
        self.assertIn('100 of 256', str(cm.exception))
        self.assertIsNone(radio.get_mmap())

    def test_nak(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize))
        fake.nak_at = 5
        radio = self._radio(fake)
        self.assertRaises(errors.RadioNakError, radio.sync_in)
        self.assertEqual(b'E', fake.writes[-1])

    def test_unplugged_during_ack(self, mock_sleep):
        fake = FakeTHD75Serial(pattern(SmallTHD75._memsize))
        fake.unplug_at = 2
        radio = self._radio(fake)
        with self.assertRaises(errors.SerialError) as cm:
            radio.sync_in()
        self.assertIn('block 2', str(cm.exception))
        self.assertIn('device disconnected', str(cm.exception))
        self.assertIsNone(radio.get_mmap())
        self.assertEqual(b'E', fake.writes[-1])

    def test_upload(self, mock_sleep):
        image = pattern(SmallTHD75._memsize)
        fake = FakeTHD75Serial(bytes(SmallTHD75._memsize))
        radio = SmallTHD75(memmap.MemoryMapBytes(image))
        radio.status_fn = mock.MagicMock()
        radio.set_pipe(fake)
        radio.sync_out()
        written = fake.image.get_packed()
        # The last two blocks are the radio's identity and are left alone
        cut = SmallTHD75._memsize - 2 * thd74.BLOCK_SIZE
        self.assertEqual(image[:cut], written[:cut])
        self.assertEqual(bytes(2 * thd74.BLOCK_SIZE), written[cut:])
        self.assertEqual(6, radio.status_fn.call_count)
        self.assertEqual('Cloning to radio',
                         radio.status_fn.call_args[0][0].msg)
        self.assertEqual(b'E', fake.writes[-1])


class TestTHD75Codec(base.BaseTest):
    def setUp(self):
        super().setUp()
        self.radio = thd74.THD75Radio(
            memmap.MemoryMapBytes(bytes(thd74.THD75Radio._memsize)))

    def _mark_empty(self, number):
        self.radio.get_mmap().set(thd74.flags_offset(number), b'\xFF')

    def test_offsets(self):
        self.assertEqual(0x4000, thd74.record_offset(0))
        self.assertEqual(0x4550, thd74.record_offset(32))
        self.assertEqual(0x46A0, thd74.record_offset(40))
        self.assertEqual(0x2004, thd74.flags_offset(1))
        self.assertEqual(0x10020, thd74.name_offset(2))

    def test_flags_empty(self):
        self._mark_empty(7)
        mem = self.radio.get_memory(7)
        self.assertTrue(mem.empty)
        self.assertEqual(7, mem.number)

    def test_zero_record_is_not_empty(self):
        mem = self.radio.get_memory(7)
        self.assertFalse(mem.empty)
        self.assertEqual(0, mem.freq)
        self.assertEqual('FM', mem.mode)
        self.assertEqual('', mem.duplex)
        self.assertEqual('', mem.tmode)
        self.assertEqual(5.0, mem.tuning_step)
        self.assertEqual(67.0, mem.rtone)

    def test_simplex_repeater_round_trip(self):
        mem = rig_common.Memory(5, name='RPTR')
        mem.freq = 146520000
        mem.duplex = '+'
        mem.offset = 600000
        mem.tmode = 'Tone'
        mem.rtone = 88.5
        self.radio.set_memory(mem)

        raw = self.radio.get_mmap().get(thd74.record_offset(5),
                                        thd74.RECORD_SIZE)
        self.assertEqual(struct.pack('<I', 146520000), raw[0:4])
        self.assertEqual(struct.pack('<I', 600000), raw[4:8])
        self.assertEqual(0x81, raw[10])
        self.assertEqual(rig_common.TONES.index(88.5), raw[11])
        self.assertEqual(b'\x00', self.radio.get_mmap().get(
            thd74.flags_offset(5)))

        decoded = self.radio.get_memory(5)
        self.assertEqual('', mem.debug_diff(decoded))
        self.assertEqual('RPTR', decoded.name)

        self.radio.set_memory(decoded)
        self.assertEqual(raw, self.radio.get_mmap().get(
            thd74.record_offset(5), thd74.RECORD_SIZE))
        self.assertEqual('', decoded.debug_diff(self.radio.get_memory(5)))

    def test_cross_and_dtcs(self):
        mem = rig_common.Memory(10)
        mem.freq = 446000000
        mem.tmode = 'Cross'
        mem.cross_mode = 'Tone->DTCS'
        mem.rtone = 100.0
        mem.dtcs = 25
        mem.mode = 'NFM'
        mem.tuning_step = 12.5
        self.radio.set_memory(mem)
        self.assertEqual(b'\x02', self.radio.get_mmap().get(
            thd74.flags_offset(10)))
        decoded = self.radio.get_memory(10)
        self.assertEqual('', mem.debug_diff(decoded))

    def test_split(self):
        mem = rig_common.Memory(11)
        mem.freq = 146520000
        mem.duplex = 'split'
        mem.offset = 446000000
        self.radio.set_memory(mem)
        # Band is chosen by the transmit frequency
        self.assertEqual(b'\x02', self.radio.get_mmap().get(
            thd74.flags_offset(11)))
        decoded = self.radio.get_memory(11)
        self.assertEqual('split', decoded.duplex)
        self.assertEqual(446000000, decoded.offset)

    def test_skip(self):
        mem = rig_common.Memory(12)
        mem.freq = 146520000
        mem.skip = 'S'
        self.radio.set_memory(mem)
        self.assertEqual(0x01, self.radio.get_mmap().get(
            thd74.flags_offset(12) + 1)[0])
        self.assertEqual('S', self.radio.get_memory(12).skip)

    def test_dv(self):
        mem = rig_common.DVMemory(20)
        mem.freq = 145670000
        mem.mode = 'DV'
        mem.dv_urcall = 'CQCQCQ'
        mem.dv_rpt1call = 'W7ABC B'
        mem.dv_rpt2call = 'W7ABC G'
        mem.dv_code = 5
        self.radio.set_memory(mem)

        # Tone bits on a digital channel are ignored
        pos = thd74.record_offset(20) + 10
        self.radio.get_mmap().set(pos, 0x80)

        decoded = self.radio.get_memory(20)
        self.assertIsInstance(decoded, rig_common.DVMemory)
        self.assertEqual('', decoded.tmode)
        self.assertEqual('W7ABC B', decoded.dv_rpt1call)
        self.assertEqual('', mem.debug_diff(decoded))

    def test_analog_has_no_dv_fields(self):
        mem = self.radio.get_memory(21)
        self.assertNotIsInstance(mem, rig_common.DVMemory)

    def test_bad_table_index(self):
        self.radio.get_mmap().set(thd74.record_offset(3) + 11, 60)
        with self.assertRaises(errors.CodecError) as cm:
            self.radio.get_memory(3)
        self.assertEqual('rtone', cm.exception.field)

    def test_bad_mode_index(self):
        # mode:3 can hold 0-7, all of which are in the table, so poke
        # the tuning step instead
        self.radio.get_mmap().set(thd74.record_offset(3) + 8, 0xF0)
        with self.assertRaises(errors.CodecError) as cm:
            self.radio.get_memory(3)
        self.assertEqual('tuning_step', cm.exception.field)

    def test_get_memories_skips_bad(self):
        self.radio.get_mmap().set(thd74.record_offset(3) + 11, 60)
        mems = self.radio.get_memories(0, 5)
        self.assertEqual([0, 1, 2, 4, 5], [m.number for m in mems])
        self.assertEqual(1, len(self.radio.errors))

    def test_encode_unsupported_value(self):
        mem = rig_common.Memory(4)
        mem.freq = 146520000
        mem.tuning_step = 7.0
        before = self.radio.get_mmap().get_packed()
        self.assertRaises(errors.InvalidValueError,
                          self.radio.set_memory, mem)
        self.assertEqual(before, self.radio.get_mmap().get_packed())

    def test_erase(self):
        mem = rig_common.Memory(6, name='GONE')
        mem.freq = 146520000
        self.radio.set_memory(mem)
        self.radio.erase_memory(6)
        self.assertTrue(self.radio.get_memory(6).empty)
        self.assertEqual(b'\xFF' * thd74.RECORD_SIZE,
                         self.radio.get_mmap().get(thd74.record_offset(6),
                                                   thd74.RECORD_SIZE))
        self.assertEqual(bytes(thd74.NAME_SIZE),
                         self.radio.get_mmap().get(thd74.name_offset(6),
                                                   thd74.NAME_SIZE))

    def test_special_channels(self):
        number = 1000 + thd74.EXTD_NUMBERS.index('Priority')
        self._mark_empty(number)
        mem = self.radio.get_memory('Priority')
        self.assertTrue(mem.empty)
        self.assertEqual(number, mem.number)
        self.assertEqual('Priority', mem.extd_number)
        self.assertEqual(['empty'], mem.immutable)
        self.assertEqual('Priority', self.radio.get_memory(number).extd_number)

    def test_call_channel_name(self):
        mem = self.radio.get_memory('VHF Call (A)')
        mem.freq = 146520000
        mem.name = 'CALL'
        self.radio.set_memory(mem)
        number = 1000 + thd74.EXTD_NUMBERS.index('VHF Call (A)')
        self.assertEqual(b'CALL', self.radio.get_mmap().get(
            thd74.name_offset(number + 5), 4))
        self.assertEqual('CALL', self.radio.get_memory('VHF Call (A)').name)

    def test_weather_channel_immutable(self):
        mem = self.radio.get_memory('WX1')
        self.assertIn('tmode', mem.immutable)
        self.assertIn('empty', mem.immutable)

    def test_invalid_location(self):
        self.assertRaises(errors.InvalidMemoryLocation,
                          self.radio.get_memory, 1500)
        self.assertRaises(errors.InvalidMemoryLocation,
                          self.radio.get_memory, -1)
        self.assertRaises(errors.InvalidMemoryLocation,
                          self.radio.get_memory, 'Bogus')
        # Unused buffer slots between the weather and call channels
        self.assertRaises(errors.InvalidMemoryLocation,
                          self.radio.get_memory,
                          1000 + thd74.EXTD_NUMBERS.index(None))

    def test_features(self):
        rf = self.radio.get_features()
        self.assertEqual((0, 999), rf.memory_bounds)
        self.assertIn('Priority', rf.valid_special_chans)
        self.assertNotIn(None, rf.valid_special_chans)
        self.assertEqual(['AM', 'CW', 'DV', 'FM', 'LSB', 'NFM', 'USB'],
                         rf.valid_modes)

    def test_raw_memory(self):
        self.assertIn('000: 00 00', self.radio.get_raw_memory(0))

    def test_match_model(self):
        size = thd74.THD75Radio._memsize
        self.assertTrue(thd74.THD75Radio.match_model(bytes(size), 'x.img'))
        self.assertFalse(thd74.THD75Radio.match_model(bytes(10), 'x.img'))
        self.assertTrue(thd74.THD74Radio.match_model(bytes(10), 'x.d74'))

    def test_d74_file(self):
        self.radio.get_mmap().set(0, b'MARK')
        with tempfile.TemporaryDirectory() as d:
            fn = os.path.join(d, 'test.d74')
            self.radio.save_mmap(fn)
            with open(fn, 'rb') as f:
                header = f.read(thd74.D74_FILE_OFFSET)
            loaded = thd74.THD74Radio(fn)
        self.assertEqual(thd74.D74_FILE_HEADER, header)
        self.assertEqual(b'MARK', loaded.get_mmap().get(0, 4))
        self.assertEqual(thd74.THD75Radio._memsize, len(loaded.get_mmap()))
