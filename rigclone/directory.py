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

import collections
import glob
import importlib
import inspect
import logging
import os
import types

from rigclone import rig_common, errors

LOG = logging.getLogger(__name__)

DriverInfo = collections.namedtuple(
    'DriverInfo',
    ['vendor', 'model', 'variant', 'description', 'clone_mode', 'rclass'])


def radio_class_id(cls):
    """Return a unique identification string for @cls"""
    ident = "%s_%s" % (cls.VENDOR, cls.MODEL)
    if cls.VARIANT:
        ident += "_%s" % cls.VARIANT
    ident = ident.replace("/", "_")
    ident = ident.replace(" ", "_")
    ident = ident.replace("(", "")
    ident = ident.replace(")", "")
    return ident


def register(cls):
    """Mark radio @cls as a driver to be offered by the directory

    Nothing is recorded globally here; build_directory() collects the
    marked classes from the driver modules it imports.
    """
    cls._rigclone_registered = True
    return cls


def is_registered(cls):
    # Only the class that was decorated, not its subclasses
    return cls.__dict__.get('_rigclone_registered', False)


def driver_info(rclass):
    """Return the DriverInfo describing @rclass"""
    description = (inspect.getdoc(rclass) or '').split('\n')[0]
    return DriverInfo(rclass.VENDOR, rclass.MODEL, rclass.VARIANT,
                      description,
                      issubclass(rclass, rig_common.CloneModeRadio),
                      rclass)


class Directory:
    """An immutable table of the available radio drivers

    Build one with build_directory() at startup and hand it to whatever
    needs to look drivers up.
    """
    def __init__(self, rclasses):
        by_model = {}
        by_ident = {}
        for rclass in rclasses:
            info = driver_info(rclass)
            key = (info.vendor, info.model)
            if key in by_model:
                raise errors.InvalidValueError(
                    "Duplicate radio driver %s %s" % key)
            by_model[key] = info
            by_ident[radio_class_id(rclass)] = rclass
        self._drivers = types.MappingProxyType(by_model)
        self._idents = types.MappingProxyType(by_ident)

    @property
    def drivers(self):
        return self._drivers

    def __len__(self):
        return len(self._drivers)

    def __contains__(self, key):
        return key in self._drivers

    def list_drivers(self):
        """Return every DriverInfo, sorted by vendor and model"""
        return [self._drivers[k] for k in sorted(self._drivers)]

    def by_vendor(self):
        """Return a dict of vendor: [DriverInfo, ...]"""
        vendors = {}
        for info in self.list_drivers():
            vendors.setdefault(info.vendor, []).append(info)
        return vendors

    def get_driver(self, vendor, model):
        """Return the DriverInfo for @vendor @model, or None"""
        return self._drivers.get((vendor, model))

    def get_radio(self, ident):
        """Get radio driver class by identification string"""
        try:
            return self._idents[ident]
        except KeyError:
            raise errors.InvalidValueError("Unknown radio type `%s'" % ident)

    def idents(self):
        return sorted(self._idents)

    def get_radio_by_image(self, image_file):
        """Attempt to get the radio class that owns @image_file, returning
        an instance loaded from it"""
        if os.path.exists(image_file):
            with open(image_file, "rb") as f:
                filedata = f.read()
        else:
            filedata = b""

        data, metadata = rig_common.CloneModeRadio._strip_metadata(filedata)

        for info in self.list_drivers():
            rclass = info.rclass
            if not info.clone_mode:
                continue

            if metadata:
                if (rclass.VENDOR == metadata.get('vendor') and
                        rclass.MODEL == metadata.get('model')):
                    return rclass(image_file)
                continue

            try:
                if rclass.match_model(filedata, image_file):
                    return rclass(image_file)
            except errors.InvalidDataError as e:
                LOG.error('Radio class %s failed during detection: %s' % (
                    rclass.__name__, e))

        if metadata:
            ex = errors.ImageMetadataInvalidModel(
                "Unsupported model %s %s" % (metadata.get("vendor"),
                                             metadata.get("model")))
            ex.metadata = metadata
            raise ex
        raise errors.ImageDetectFailed("Unknown file format")


def driver_modules():
    """Return the names of all the modules in rigclone.drivers"""
    module_base = os.path.dirname(os.path.abspath(__file__))
    driver_files = glob.glob(os.path.join(module_base, 'drivers', '*.py'))
    names = []
    for driver_file in sorted(driver_files):
        name = os.path.splitext(os.path.basename(driver_file))[0]
        if not name.startswith('__'):
            names.append('rigclone.drivers.%s' % name)
    return names


def build_directory(modules=None):
    """Import the driver @modules and return a Directory of the drivers
    they register. By default every module in rigclone.drivers is used."""
    if modules is None:
        modules = driver_modules()

    rclasses = []
    for name in modules:
        module = importlib.import_module(name)
        for _name, obj in inspect.getmembers(module, inspect.isclass):
            if (obj.__module__ == module.__name__ and
                    issubclass(obj, rig_common.Radio) and
                    is_registered(obj)):
                rclasses.append(obj)

    directory = Directory(rclasses)
    LOG.debug('Built directory of %i drivers', len(directory))
    return directory
