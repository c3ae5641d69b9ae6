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

from rigclone import errors
from rigclone import util


class MemoryMapBytes:
    """
    A bounds-checked memory map over a fixed-size image
    """

    def __init__(self, data):
        self._data = bytearray(data)

    def _check(self, start, length):
        if start < 0 or length < 0 or start + length > len(self._data):
            raise errors.OutOfBoundsError(start, length, len(self._data))

    def printable(self, start=None, end=None):
        """Return a printable representation of the memory map"""
        if not start:
            start = 0

        if not end:
            end = len(self._data)

        self._check(start, end - start)
        return util.hexprint(self._data[start:end],
                             addrfmt='%(addr)04x')

    def get(self, start, length=1):
        """Return a chunk of memory of @length bytes from @start

        A @length of None or -1 means everything from @start to the end.
        """
        if length is None or length == -1:
            length = len(self._data) - start
        self._check(start, length)
        return bytes(self._data[start:start + length])

    def set(self, pos, value):
        """Set a chunk of memory at @pos to @value"""
        if isinstance(value, int):
            self._check(pos, 1)
            self._data[pos] = value & 0xFF
        elif isinstance(value, (bytes, bytearray, memoryview)):
            self._check(pos, len(value))
            self._data[pos:pos + len(value)] = value
        else:
            raise ValueError("Unsupported type %s for value" %
                             type(value).__name__)

    def get_packed(self):
        """Return the entire memory map as raw data"""
        return bytes(self._data)

    def __len__(self):
        return len(self._data)

    def __getitem__(self, pos):
        if isinstance(pos, slice):
            if pos.step not in (None, 1):
                raise ValueError('Stepped slices are not supported')
            start = 0 if pos.start is None else pos.start
            end = len(self._data) if pos.stop is None else pos.stop
            if end < start:
                raise errors.OutOfBoundsError(start, end - start,
                                              len(self._data))
            return self.get(start, end - start)
        return self.get(pos)

    def __setitem__(self, pos, value):
        """
        NB: Setting a value of more than one byte overwrites
        len(value) bytes of the map, unlike a typical array!
        """
        if isinstance(pos, slice):
            pos = pos.start or 0
        self.set(pos, value)

    def __repr__(self):
        return '<MemoryMapBytes size=0x%x>' % len(self._data)
