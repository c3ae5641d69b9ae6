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

"""Persistent user settings, kept in an INI file in the config directory"""

import configparser
import logging
import os

from rigclone import platform

LOG = logging.getLogger(__name__)

# Used when the file does not set a key
DEFAULTS = {
    'serial': {
        # Seconds to wait for the radio on each read or write
        'timeout': '2.0',
        # Record all port traffic to a temporary trace file
        'trace': 'False',
    },
}


class RigConfig:
    def __init__(self, basepath, name="rigclone.config"):
        self._path = os.path.join(basepath, name)
        self._parser = configparser.ConfigParser(interpolation=None)
        self._parser.read_dict(DEFAULTS)
        if not os.path.exists(self._path):
            return
        try:
            self._parser.read(self._path, encoding='utf-8-sig')
        except UnicodeDecodeError:
            LOG.warning('Config file %s is not UTF-8; reading it with the '
                        'default encoding', self._path)
            self._parser.read(self._path)

    def save(self):
        with open(self._path, "w", encoding='utf-8') as f:
            self._parser.write(f)

    def get(self, key, section, raw=False):
        """Return the value of @key in @section, or None if unset"""
        try:
            return self._parser.get(section, key, raw=raw)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return None

    def set(self, key, value, section):
        if not self._parser.has_section(section):
            self._parser.add_section(section)
        self._parser.set(section, key, value)

    def is_defined(self, key, section):
        return self._parser.has_option(section, key)

    def remove_option(self, section, key):
        """Remove @key, and @section too once it is empty"""
        self._parser.remove_option(section, key)
        if not self._parser.items(section):
            self._parser.remove_section(section)


class RigConfigProxy:
    """One section of a RigConfig, with typed accessors"""

    def __init__(self, config, section="global"):
        self._config = config
        self._section = section

    def get(self, key, section=None, raw=False):
        return self._config.get(key, section or self._section, raw=raw)

    def set(self, key, value, section=None):
        self._config.set(key, value, section or self._section)

    def _get_typed(self, convert, key, section, default):
        try:
            return convert(self.get(key, section))
        except (TypeError, ValueError):
            return default

    def get_int(self, key, section=None, default=0):
        return self._get_typed(int, key, section, default)

    def set_int(self, key, value, section=None):
        if not isinstance(value, int):
            raise ValueError("Value is not an integer")
        self.set(key, "%i" % value, section)

    def get_float(self, key, section=None, default=0.0):
        return self._get_typed(float, key, section, default)

    def set_float(self, key, value, section=None):
        if not isinstance(value, float):
            raise ValueError("Value is not a float")
        self.set(key, "%f" % value, section)

    def get_bool(self, key, section=None, default=False):
        value = self.get(key, section)
        return default if value is None else value == "True"

    def set_bool(self, key, value, section=None):
        self.set(key, str(bool(value)), section)

    def is_defined(self, key, section=None):
        return self._config.is_defined(key, section or self._section)

    def remove_option(self, key, section=None):
        self._config.remove_option(section or self._section, key)

    def save(self):
        self._config.save()


_CONFIG = None


def get(section="global"):
    """Return a proxy for @section of the user's config file"""
    global _CONFIG

    if not _CONFIG:
        _CONFIG = RigConfig(platform.get_platform().config_dir())

    return RigConfigProxy(_CONFIG, section)
