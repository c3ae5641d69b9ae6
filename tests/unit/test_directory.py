import base64
import json
import os
import tempfile
import unittest

from rigclone import directory
from rigclone.drivers import icomciv
from rigclone.drivers import thd74
from rigclone.drivers import uv5r
from rigclone import errors
from rigclone import memmap
from rigclone import rig_common


class FakeAlpha(rig_common.CloneModeRadio):
    """Fake Alpha

    Not a real radio.
    """
    VENDOR = 'Fake'
    MODEL = 'Alpha'
    _memsize = 16


class FakeBeta(rig_common.LiveRadio):
    VENDOR = 'Fake'
    MODEL = 'Beta/2'
    VARIANT = 'Left (A)'


class FakeAlphaAgain(rig_common.CloneModeRadio):
    VENDOR = 'Fake'
    MODEL = 'Alpha'


class TestDirectory(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.drivers = directory.build_directory()

    def test_build_directory(self):
        self.assertEqual(4, len(self.drivers))
        self.assertIn(('Kenwood', 'TH-D75'), self.drivers)
        self.assertIn(('Icom', 'IC-9700'), self.drivers)
        self.assertNotIn(('Icom', 'IC-9700 VHF'), self.drivers)
        self.assertEqual(['Baofeng_UV-5R', 'Icom_IC-9700',
                          'Kenwood_TH-D74_clone_mode', 'Kenwood_TH-D75'],
                         self.drivers.idents())

    def test_build_directory_modules(self):
        drivers = directory.build_directory(['rigclone.drivers.uv5r'])
        self.assertEqual(1, len(drivers))
        self.assertIs(uv5r.BaofengUV5R,
                      drivers.get_radio('Baofeng_UV-5R'))

    def test_driver_modules(self):
        modules = directory.driver_modules()
        self.assertIn('rigclone.drivers.thd74', modules)
        self.assertNotIn('rigclone.drivers.__init__', modules)

    def test_drivers_read_only(self):
        with self.assertRaises(TypeError):
            self.drivers.drivers[('Fake', 'Alpha')] = None

    def test_get_radio(self):
        self.assertIs(thd74.THD75Radio,
                      self.drivers.get_radio('Kenwood_TH-D75'))
        self.assertIs(icomciv.Icom9700Radio,
                      self.drivers.get_radio('Icom_IC-9700'))
        self.assertRaises(errors.InvalidValueError,
                          self.drivers.get_radio, 'Foo_Bar')

    def test_get_driver(self):
        info = self.drivers.get_driver('Baofeng', 'UV-5R')
        self.assertEqual('Baofeng', info.vendor)
        self.assertEqual('UV-5R', info.model)
        self.assertTrue(info.clone_mode)
        self.assertIs(uv5r.BaofengUV5R, info.rclass)
        self.assertFalse(
            self.drivers.get_driver('Icom', 'IC-9700').clone_mode)
        self.assertIsNone(self.drivers.get_driver('Baofeng', 'UV-99'))

    def test_list_drivers_sorted(self):
        keys = [(i.vendor, i.model) for i in self.drivers.list_drivers()]
        self.assertEqual(sorted(keys), keys)

    def test_by_vendor(self):
        vendors = self.drivers.by_vendor()
        self.assertEqual(['Baofeng', 'Icom', 'Kenwood'], sorted(vendors))
        self.assertEqual(['TH-D74 (clone mode)', 'TH-D75'],
                         [i.model for i in vendors['Kenwood']])


class TestDirectoryBasics(unittest.TestCase):
    def test_radio_class_id(self):
        self.assertEqual('Fake_Beta_2_Left_A',
                         directory.radio_class_id(FakeBeta))

    def test_driver_info(self):
        info = directory.driver_info(FakeAlpha)
        self.assertEqual('Fake Alpha', info.description)
        self.assertTrue(info.clone_mode)
        self.assertFalse(directory.driver_info(FakeBeta).clone_mode)

    def test_register_not_inherited(self):
        self.assertTrue(directory.is_registered(thd74.THD74Radio))
        self.assertTrue(directory.is_registered(thd74.THD75Radio))
        self.assertFalse(directory.is_registered(icomciv.Icom9700RadioBand))
        self.assertFalse(directory.is_registered(FakeAlpha))

    def test_duplicate(self):
        self.assertRaises(errors.InvalidValueError,
                          directory.Directory, [FakeAlpha, FakeAlphaAgain])

    def test_custom(self):
        drivers = directory.Directory([FakeAlpha, FakeBeta])
        self.assertEqual(2, len(drivers))
        self.assertIs(FakeBeta, drivers.get_radio('Fake_Beta_2_Left_A'))


class TestImageDetect(unittest.TestCase):
    def setUp(self):
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)
        self.drivers = directory.build_directory()

    def _path(self, name):
        return os.path.join(self.tempdir.name, name)

    def test_by_metadata(self):
        fn = self._path('radio.img')
        radio = uv5r.BaofengUV5R(memmap.MemoryMapBytes(bytes(0x1808)))
        radio.save_mmap(fn)
        loaded = self.drivers.get_radio_by_image(fn)
        self.assertIsInstance(loaded, uv5r.BaofengUV5R)
        self.assertEqual('UV-5R', loaded.metadata['model'])

    def test_by_metadata_subclass(self):
        # The TH-D75 shares its image size with the TH-D74, so only the
        # metadata can tell them apart
        fn = self._path('radio.img')
        size = thd74.THD75Radio._memsize
        radio = thd74.THD75Radio(memmap.MemoryMapBytes(bytes(size)))
        radio.save_mmap(fn)
        loaded = self.drivers.get_radio_by_image(fn)
        self.assertIs(thd74.THD75Radio, loaded.__class__)

    def test_by_size(self):
        fn = self._path('radio.bin')
        with open(fn, 'wb') as f:
            f.write(bytes(0x1808))
        loaded = self.drivers.get_radio_by_image(fn)
        self.assertIsInstance(loaded, uv5r.BaofengUV5R)

    def test_unknown_model(self):
        fn = self._path('radio.img')
        metadata = base64.b64encode(json.dumps(
            {'vendor': 'Foo', 'model': 'Bar'}).encode())
        with open(fn, 'wb') as f:
            f.write(bytes(16) + rig_common.CloneModeRadio.MAGIC + metadata)
        with self.assertRaises(errors.ImageMetadataInvalidModel) as cm:
            self.drivers.get_radio_by_image(fn)
        self.assertEqual('Foo', cm.exception.metadata['vendor'])

    def test_unknown_file(self):
        fn = self._path('radio.bin')
        with open(fn, 'wb') as f:
            f.write(bytes(10))
        self.assertRaises(errors.ImageDetectFailed,
                          self.drivers.get_radio_by_image, fn)

    def test_missing_file(self):
        self.assertRaises(errors.ImageDetectFailed,
                          self.drivers.get_radio_by_image,
                          self._path('nothere.bin'))
