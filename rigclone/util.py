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


def hexprint(data, addrfmt=None, block_size=8):
    """Return a hexdump of @data with @block_size bytes per line

    @addrfmt is a %-format applied to a dict with the line's 'addr'.
    """
    if addrfmt is None:
        addrfmt = '%(addr)03i'

    lines = []
    for addr in range(0, len(data), block_size):
        chunk = data[addr:addr + block_size]
        try:
            prefix = addrfmt % {'addr': addr}
        except (OverflowError, ValueError, TypeError, KeyError):
            prefix = '%03i' % addr
        hexes = ''.join('%02x ' % byte for byte in chunk)
        text = ''.join(chr(byte) if 0x20 < byte < 0x7E else '.'
                       for byte in chunk)
        lines.append('%s: %s  %s\n' % (prefix,
                                       hexes.ljust(block_size * 3),
                                       text.ljust(block_size, '.')))
    return ''.join(lines)


def get_dict_rev(thedict, value):
    """Return the key that maps to @value in @thedict"""
    return {v: k for k, v in thedict.items()}[value]
