# Copyright 2013 Dan Smith <dsmith@danplanet.com>
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
import tempfile
from unittest import mock

from tests.unit import base
from rigclone import platform


class Win32PlatformTest(base.BaseTest):
    @mock.patch('os.mkdir')
    @mock.patch('os.path.isdir', return_value=False)
    @mock.patch('os.getenv', return_value='foo')
    def test_init(self, mock_getenv, mock_isdir, mock_mkdir):
        p = platform.Win32Platform()
        mock_getenv.assert_any_call('APPDATA')
        mock_mkdir.assert_called_once_with(
            os.path.abspath(os.path.join('foo', 'rigclone')))
        self.assertEqual(os.path.abspath(os.path.join('foo', 'rigclone')),
                         p.config_dir())

    def test_filter_filename(self):
        p = platform.Win32Platform(tempfile.gettempdir())
        self.assertEqual('foobar.img', p.filter_filename('foo:bar?.img'))


class UnixPlatformTest(base.BaseTest):
    def test_basepath(self):
        with tempfile.TemporaryDirectory() as d:
            base = os.path.join(d, 'rc')
            p = platform.UnixPlatform(base)
            self.assertTrue(os.path.isdir(base))
            self.assertEqual(os.path.join(base, 'rigclone.config'),
                             p.config_file('rigclone.config'))
            self.assertEqual(os.path.join(base, 'logs', 'foo_bar.txt'),
                             p.log_file('foo bar'))
            self.assertTrue(os.path.isdir(os.path.join(base, 'logs')))

    def test_filter_filename(self):
        with tempfile.TemporaryDirectory() as d:
            p = platform.UnixPlatform(d)
            self.assertEqual('foobar', p.filter_filename('foo/bar'))

    def test_os_version_string(self):
        with tempfile.TemporaryDirectory() as d:
            p = platform.UnixPlatform(d)
            self.assertTrue(p.os_version_string())

    def test_get_platform_singleton(self):
        with mock.patch('rigclone.platform.PLATFORM', new=None):
            with tempfile.TemporaryDirectory() as d:
                p = platform.get_platform(d)
                self.assertIs(p, platform.get_platform())
                self.assertEqual(d, p.config_dir())
