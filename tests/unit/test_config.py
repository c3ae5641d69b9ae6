import os
import tempfile
import unittest
from unittest import mock

from rigclone import config


class TestRigConfig(unittest.TestCase):
    def setUp(self):
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)

    def _config(self):
        return config.RigConfig(self.tempdir.name)

    def test_defaults(self):
        conf = self._config()
        self.assertEqual('2.0', conf.get('timeout', 'serial'))
        self.assertEqual('False', conf.get('trace', 'serial'))
        self.assertIsNone(conf.get('missing', 'serial'))
        self.assertIsNone(conf.get('timeout', 'nosection'))

    def test_set_save_reload(self):
        conf = self._config()
        conf.set('last_port', '/dev/ttyUSB0', 'state')
        conf.set('timeout', '5.0', 'serial')
        conf.save()
        self.assertTrue(os.path.exists(
            os.path.join(self.tempdir.name, 'rigclone.config')))

        conf = self._config()
        self.assertEqual('/dev/ttyUSB0', conf.get('last_port', 'state'))
        self.assertEqual('5.0', conf.get('timeout', 'serial'))

    def test_is_defined_and_remove(self):
        conf = self._config()
        self.assertFalse(conf.is_defined('foo', 'state'))
        conf.set('foo', 'bar', 'state')
        self.assertTrue(conf.is_defined('foo', 'state'))
        conf.remove_option('state', 'foo')
        self.assertFalse(conf.is_defined('foo', 'state'))
        self.assertIsNone(conf.get('foo', 'state'))

    def test_reads_bom(self):
        with open(os.path.join(self.tempdir.name, 'rigclone.config'),
                  'w', encoding='utf-8-sig') as f:
            f.write('[serial]\ntrace = True\n')
        self.assertEqual('True', self._config().get('trace', 'serial'))


class TestRigConfigProxy(unittest.TestCase):
    def setUp(self):
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)
        self.conf = config.RigConfig(self.tempdir.name)

    def test_typed_values(self):
        proxy = config.RigConfigProxy(self.conf, 'state')
        proxy.set_int('count', 3)
        self.assertEqual(3, proxy.get_int('count'))
        proxy.set_float('level', 1.5)
        self.assertEqual(1.5, proxy.get_float('level'))
        proxy.set_bool('enabled', True)
        self.assertTrue(proxy.get_bool('enabled'))
        proxy.set_bool('enabled', False)
        self.assertFalse(proxy.get_bool('enabled'))

    def test_typed_defaults(self):
        proxy = config.RigConfigProxy(self.conf, 'state')
        self.assertEqual(7, proxy.get_int('missing', default=7))
        self.assertEqual(0.25, proxy.get_float('missing', default=0.25))
        self.assertTrue(proxy.get_bool('missing', default=True))
        proxy.set('count', 'lots')
        self.assertEqual(0, proxy.get_int('count'))

    def test_typed_setters_reject(self):
        proxy = config.RigConfigProxy(self.conf, 'state')
        self.assertRaises(ValueError, proxy.set_int, 'count', '3')
        self.assertRaises(ValueError, proxy.set_float, 'level', 1)

    def test_serial_defaults(self):
        proxy = config.RigConfigProxy(self.conf, 'serial')
        self.assertEqual(2.0, proxy.get_float('timeout'))
        self.assertFalse(proxy.get_bool('trace'))

    def test_other_section(self):
        proxy = config.RigConfigProxy(self.conf, 'state')
        proxy.set('foo', 'bar', section='other')
        self.assertTrue(proxy.is_defined('foo', section='other'))
        self.assertFalse(proxy.is_defined('foo'))
        proxy.remove_option('foo', section='other')
        self.assertFalse(proxy.is_defined('foo', section='other'))

    def test_save(self):
        proxy = config.RigConfigProxy(self.conf, 'state')
        proxy.set('foo', 'bar')
        proxy.save()
        conf = config.RigConfig(self.tempdir.name)
        self.assertEqual('bar', conf.get('foo', 'state'))


class TestConfigGet(unittest.TestCase):
    def test_get_shared(self):
        with tempfile.TemporaryDirectory() as d:
            plat = mock.MagicMock()
            plat.config_dir.return_value = d
            with mock.patch.object(config, '_CONFIG', None), \
                    mock.patch('rigclone.platform.get_platform',
                               return_value=plat):
                a = config.get('serial')
                b = config.get('state')
                a.set('timeout', '9.0')
                self.assertEqual('9.0', b.get('timeout', section='serial'))
                self.assertIsNotNone(config._CONFIG)
