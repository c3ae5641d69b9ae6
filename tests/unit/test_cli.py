import os
import tempfile
import unittest
from unittest import mock

from rigclone.cli import main
from rigclone import directory
from rigclone.drivers import uv5r
from rigclone import errors
from rigclone import memmap
from rigclone import rig_common
from tests.unit.test_icomciv import FakeIC9700Serial, make_record


class TestCLI(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.drivers = directory.build_directory()

    def setUp(self):
        self.stdout_lines = []
        self.patches = []
        self.patches.append(mock.patch('sys.exit'))
        self.patches.append(mock.patch.object(main, 'print',
                                              new=self.fake_print,
                                              create=True))
        for patch in self.patches:
            patch.start()

        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)

        # A UV-5R image with one channel programmed
        radio = uv5r.BaofengUV5R(
            memmap.MemoryMapBytes(b'\xFF' * uv5r.BaofengUV5R._memsize))
        mem = rig_common.Memory(1, name='RPTR')
        mem.freq = 146520000
        mem.duplex = '+'
        mem.offset = 600000
        mem.tmode = 'Tone'
        mem.rtone = 100.0
        radio.set_memory(mem)
        self.testfile = os.path.join(self.tempdir.name, 'uv5r.img')
        radio.save_mmap(self.testfile)

    def tearDown(self):
        for patch in self.patches:
            patch.stop()

    def fake_print(self, *a):
        for i in a:
            self.stdout_lines.append(str(i))

    @property
    def stdout(self):
        return '\n'.join(self.stdout_lines)

    def _main(self, *args):
        return main.main(args=list(args), drivers=self.drivers)

    def _load(self):
        return uv5r.BaofengUV5R(self.testfile)

    def test_cli_simple(self):
        # Super simple, just print the first memory and make sure it
        # works
        self.assertEqual(0, self._main('--mmap', self.testfile,
                                       '--get-mem', '1'))
        self.assertIn('146.520000', self.stdout)
        self.assertIn('RPTR', self.stdout)
        self.assertIn('r100.0*', self.stdout)

    def test_cli_explicit_radio(self):
        self.assertEqual(0, self._main('-r', 'Baofeng_UV-5R',
                                       '--mmap', self.testfile,
                                       '--raw', '1'))
        self.assertIn('000: 00 20 65 14', self.stdout)

    def test_cli_list_radios(self):
        self.assertEqual(0, self._main('--list-radios'))
        self.assertIn('Baofeng_UV-5R', self.stdout)
        self.assertIn('Icom_IC-9700', self.stdout)
        self.assertIn('(live)', self.stdout)
        self.assertIn('Kenwood_TH-D75', self.stdout)

    @mock.patch('rigclone.serialtrace.list_ports',
                return_value=['/dev/ttyUSB0'])
    def test_cli_list_ports(self, mock_list):
        self.assertEqual(0, self._main('--list-ports'))
        self.assertEqual(['/dev/ttyUSB0'], self.stdout_lines)

    def test_cli_list_mem(self):
        self.assertEqual(0, self._main('--mmap', self.testfile,
                                       '--list-mem'))
        self.assertEqual(1, len(self.stdout_lines))
        self.assertIn('Memory 1:', self.stdout)

    def test_cli_set_mem(self):
        self.assertEqual(0, self._main('--mmap', self.testfile,
                                       '--set-mem-name', 'NEW',
                                       '--set-mem-freq', '446.0',
                                       '--set-mem-tsqlon',
                                       '--set-mem-tsql', '123.0',
                                       '2'))
        mem = self._load().get_memory(2)
        self.assertEqual(446000000, mem.freq)
        self.assertEqual('NEW', mem.name)
        self.assertEqual('TSQL', mem.tmode)
        self.assertEqual(123.0, mem.ctone)

    def test_cli_edit_mem(self):
        self.assertEqual(0, self._main('--mmap', self.testfile,
                                       '--set-mem-dup', '-',
                                       '--set-mem-offset', '0.6',
                                       '1'))
        mem = self._load().get_memory(1)
        self.assertEqual(146520000, mem.freq)
        self.assertEqual('-', mem.duplex)
        self.assertEqual(600000, mem.offset)
        self.assertEqual('RPTR', mem.name)

    def test_cli_set_mem_invalid(self):
        # Out of band for this radio
        self._main('--mmap', self.testfile, '--set-mem-freq', '50.0', '3')
        main.sys.exit.assert_called_with(1)

    def test_cli_bad_duplex(self):
        self.assertEqual(1, self._main('--mmap', self.testfile,
                                       '--set-mem-dup', 'x', '1'))

    def test_cli_clear_mem(self):
        self.assertEqual(0, self._main('--mmap', self.testfile,
                                       '--clear-mem', '1'))
        self.assertTrue(self._load().get_memory(1).empty)

    def test_cli_bad_memory_number(self):
        with mock.patch('sys.exit', side_effect=SystemExit(1)):
            self.assertRaises(SystemExit, self._main,
                              '--mmap', self.testfile, '--get-mem', '500')

    def test_cli_unknown_radio(self):
        self.assertEqual(1, self._main('-r', 'Foo_Bar'))

    def test_cli_no_radio(self):
        self.assertEqual(1, self._main('--get-mem', '1'))
        self.assertIn('must specify a radio model', self.stdout)

    def test_cli_missing_image(self):
        self.assertEqual(1, self._main(
            '-r', 'Baofeng_UV-5R', '--mmap',
            os.path.join(self.tempdir.name, 'missing.img'), '--get-mem', '1'))

    def test_cli_live_radio_mmap(self):
        self.assertEqual(1, self._main('-r', 'Icom_IC-9700',
                                       '--mmap', self.testfile,
                                       '--get-mem', '1'))

    @mock.patch('rigclone.serialtrace.open_serial',
                side_effect=errors.SerialError('busy'))
    def test_cli_serial_fails(self, mock_open):
        self.assertEqual(1, self._main('-r', 'Baofeng_UV-5R',
                                       '-s', '/dev/ttyFAKE',
                                       '--download-mmap',
                                       '--mmap', self.testfile))

    @mock.patch('rigclone.serialtrace.open_serial')
    def test_cli_download(self, mock_open):
        def fake_sync_in(radio):
            radio._mmap = memmap.MemoryMapBytes(
                b'\xFF' * uv5r.BaofengUV5R._memsize)

        target = os.path.join(self.tempdir.name, 'download.img')
        with mock.patch.object(uv5r.BaofengUV5R, 'sync_in', autospec=True,
                               side_effect=fake_sync_in):
            self.assertEqual(0, self._main('-r', 'Baofeng_UV-5R',
                                           '-s', '/dev/ttyFAKE',
                                           '--download-mmap',
                                           '--mmap', target))
        self.assertIn('Download successful', self.stdout)
        mock_open.return_value.close.assert_called_once_with()
        self.assertTrue(self.drivers.get_radio_by_image(target)
                        .get_memory(1).empty)

    @mock.patch('rigclone.serialtrace.open_serial')
    def test_cli_upload_radio_error(self, mock_open):
        with mock.patch.object(uv5r.BaofengUV5R, 'sync_out',
                               side_effect=errors.RadioError('no answer')):
            self.assertEqual(1, self._main('-r', 'Baofeng_UV-5R',
                                           '-s', '/dev/ttyFAKE',
                                           '--upload-mmap',
                                           '--mmap', self.testfile))
        mock_open.return_value.close.assert_called_once_with()

    @mock.patch('rigclone.serialtrace.open_serial')
    def test_cli_download_needs_serial_mmap(self, mock_open):
        self.assertEqual(1, self._main('-r', 'Baofeng_UV-5R',
                                       '-s', '/dev/ttyFAKE',
                                       '--download-mmap'))

    def _live_radio(self, mock_open):
        fake = FakeIC9700Serial()
        fake.close = mock.MagicMock()
        mock_open.return_value = fake
        return fake

    @mock.patch('rigclone.rig_common.console_status')
    @mock.patch('rigclone.serialtrace.open_serial')
    def test_cli_download_live(self, mock_open, mock_status):
        fake = self._live_radio(mock_open)
        fake.memories[b'\x01\x00\x01'] = make_record()
        self.assertEqual(0, self._main('-r', 'Icom_IC-9700',
                                       '-s', '/dev/ttyFAKE',
                                       '--sub-device', '0',
                                       '--download-mmap'))
        self.assertIn('146.520000', self.stdout)
        self.assertIn('Download successful', self.stdout)
        self.assertEqual(99, mock_status.call_count)
        self.assertEqual('Read memory 99', mock_status.call_args[0][0].msg)
        fake.close.assert_called_once_with()

    @mock.patch('rigclone.rig_common.console_status')
    @mock.patch('rigclone.serialtrace.open_serial')
    def test_cli_upload_live(self, mock_open, mock_status):
        fake = self._live_radio(mock_open)
        # Left over on the radio, erased by the upload
        fake.memories[b'\x01\x00\x07'] = make_record(number=b'\x00\x07')
        self.assertEqual(0, self._main('-r', 'Icom_IC-9700',
                                       '-s', '/dev/ttyFAKE',
                                       '--sub-device', '0',
                                       '--upload-mmap',
                                       '--mmap', self.testfile))
        self.assertIn('Upload successful', self.stdout)
        self.assertEqual([b'\x01\x00\x01'], list(fake.memories))
        self.assertEqual(99, mock_status.call_count)
        msgs = [c[0][0].msg for c in mock_status.call_args_list]
        self.assertEqual('Wrote memory 1', msgs[0])
        self.assertEqual('Erased memory 2', msgs[1])

        # Read the channel back through the radio
        band = self.drivers.get_radio('Icom_IC-9700')(fake)
        mem = band.get_sub_devices()[0].get_memory(1)
        self.assertEqual(146520000, mem.freq)
        self.assertEqual('+', mem.duplex)
        self.assertEqual(600000, mem.offset)
        self.assertEqual('Tone', mem.tmode)
        self.assertEqual(100.0, mem.rtone)
        fake.close.assert_called_once_with()

    @mock.patch('rigclone.serialtrace.open_serial')
    def test_cli_upload_live_needs_image(self, mock_open):
        fake = self._live_radio(mock_open)
        self.assertEqual(1, self._main('-r', 'Icom_IC-9700',
                                       '-s', '/dev/ttyFAKE',
                                       '--sub-device', '0',
                                       '--upload-mmap'))
        self.assertNotIn('Upload successful', self.stdout)
        fake.close.assert_called_once_with()
