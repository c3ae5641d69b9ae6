# Copyright 2010 Dan Smith <dsmith@danplanet.com>
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

# Scalar codecs for raw radio memory.
#
# Integer kinds use the same names as the memory-layout notation found in
# driver comments:
#
#  u8   /* Unsigned 8-bit value                    */
#  u16  /* Unsigned 16-bit value                   */
#  ul16 /* Unsigned 16-bit value (LE)              */
#  u24  /* Unsigned 24-bit value                   */
#  ul24 /* Unsigned 24-bit value (LE)              */
#  u32  /* Unsigned 32-bit value                   */
#  ul32 /* Unsigned 32-bit value (LE)              */
#  i8   /* Signed 8-bit value                      */
#  i16  /* Signed 16-bit value                     */
#  il16 /* Signed 16-bit value (LE)                */
#  i24  /* Signed 24-bit value                     */
#  il24 /* Signed 24-bit value (LE)                */
#  i32  /* Signed 32-bit value                     */
#  il32 /* Signed 32-bit value (LE)                */
#  bbcd /* BCD-encoded bytes (BE)                  */
#  lbcd /* BCD-encoded bytes (LE)                  */
#  char /* Fixed-length character array            */
#
# Bitfields are addressed by an LSB-relative shift and a width, so a
# field declared "u8 foo:3, bar:2, baz:3;" has foo at shift 5, bar at
# shift 3 and baz at shift 0.

import logging

from rigclone import errors

LOG = logging.getLogger(__name__)

# kind: (width, signed, bigendian)
INT_TYPES = {
    'u8': (1, False, True),
    'u16': (2, False, True),
    'ul16': (2, False, False),
    'u24': (3, False, True),
    'ul24': (3, False, False),
    'u32': (4, False, True),
    'ul32': (4, False, False),
    'i8': (1, True, True),
    'i16': (2, True, True),
    'il16': (2, True, False),
    'i24': (3, True, True),
    'il24': (3, True, False),
    'i32': (4, True, True),
    'il32': (4, True, False),
}


def format_binary(nbits, value, pad=8):
    s = ""
    for i in range(0, nbits):
        s = "%i%s" % (value & 0x01, s)
        value >>= 1
    return "%s%s" % ((pad - len(s)) * ".", s)


def bits_between(start, end):
    bits = (1 << (int(end) - int(start))) - 1
    return bits << int(start)


def get_bits(byte, shift, width):
    """Return the @width-bit field at LSB-relative @shift of @byte"""
    return (int(byte) & bits_between(shift, shift + width)) >> shift


def set_bits(byte, shift, width, value, field=None):
    """Return @byte with the @width-bit field at @shift replaced"""
    value = int(value)
    if value < 0 or value >= (1 << width):
        raise errors.ValueTooWideError(
            'Value %i does not fit in %i bit(s)' % (value, width), field)
    mask = bits_between(shift, shift + width)
    return (int(byte) & ~mask & 0xFF) | (value << shift)


def bcd_byte_to_digits(byte, field=None):
    """Split a BCD byte into (tens, ones), validating both nibbles"""
    tens = (byte & 0xF0) >> 4
    ones = byte & 0x0F
    if tens > 9 or ones > 9:
        raise errors.InvalidBCDError(
            'Invalid BCD byte 0x%02x' % byte, field)
    return tens, ones


def bcd_to_int(data, bigendian=True, field=None):
    """Decode an array of BCD bytes into an integer

    With @bigendian the first byte holds the most significant digits
    (bbcd), otherwise the last one does (lbcd).
    """
    if not bigendian:
        data = reversed(data)
    value = 0
    for byte in data:
        tens, ones = bcd_byte_to_digits(byte, field)
        value = (value * 100) + (tens * 10) + ones
    return value


def int_to_bcd(value, width, bigendian=True, field=None):
    """Encode @value as @width bytes of BCD"""
    value = int(value)
    if value < 0:
        raise errors.InvalidValueError(
            '%s: negative value %i cannot be BCD encoded' % (
                field or 'bcd', value))
    if value >= 100 ** width:
        raise errors.ValueTooWideError(
            'Value %i needs more than %i BCD digits' % (value, width * 2),
            field)
    result = []
    for i in range(width):
        pair = value % 100
        value //= 100
        result.append(((pair // 10) << 4) | (pair % 10))
    if bigendian:
        result.reverse()
    return bytes(result)


def _int_type(kind):
    try:
        return INT_TYPES[kind]
    except KeyError:
        raise ValueError('Unknown integer kind %r' % kind)


def int_size(kind):
    return _int_type(kind)[0]


def read_int(kind, data, field=None):
    """Read an integer of @kind from the start of @data"""
    width, signed, bigendian = _int_type(kind)
    if len(data) < width:
        raise errors.InsufficientDataError(
            'Need %i bytes for %s, have %i' % (width, kind, len(data)),
            field)
    raw = bytes(data[:width])
    value = int.from_bytes(raw, 'big' if bigendian else 'little')
    msb = raw[0] if bigendian else raw[-1]
    if signed and msb & 0x80:
        value -= 1 << (8 * width)
    return value


def write_int(kind, value, field=None):
    """Return the raw bytes for @value as an integer of @kind"""
    width, signed, bigendian = _int_type(kind)
    value = int(value)
    if signed:
        lo, hi = -(1 << (8 * width - 1)), (1 << (8 * width - 1)) - 1
    else:
        lo, hi = 0, (1 << (8 * width)) - 1
    if value < lo or value > hi:
        raise errors.ValueTooWideError(
            'Value %i out of range for %s' % (value, kind), field)
    if value < 0:
        value += 1 << (8 * width)
    return value.to_bytes(width, 'big' if bigendian else 'little')


def get_string(data, null_terminated=True, pad=b' '):
    """Decode a fixed-length character array

    Bytes above 0x7F come back as U+FFFD rather than failing the whole
    read. Control bytes are kept as they are. Trailing @pad, NUL and 0xFF
    bytes are removed.
    """
    data = bytes(data)
    if null_terminated and b'\x00' in data:
        data = data[:data.index(b'\x00')]
    data = data.rstrip(pad + b'\x00\xff')
    return data.decode('ascii', errors='replace')


def put_string(value, length, pad=b' ', field=None):
    """Encode @value into exactly @length bytes, padded with @pad"""
    try:
        raw = value.encode('ascii')
    except UnicodeEncodeError as e:
        raise errors.InvalidValueError(
            '%s: unable to encode %r: %s' % (field or 'string', value, e))
    return raw[:length].ljust(length, pad)


def get_field(data, location, field=None):
    """Return the bitfield at @location, a (byte, shift, width) tuple"""
    byte, shift, width = location
    if byte >= len(data):
        raise errors.InsufficientDataError(
            'Byte %i is beyond record of %i bytes' % (byte, len(data)),
            field)
    return get_bits(data[byte], shift, width)


def set_field(data, location, value, field=None):
    """Store @value into the bitfield at @location of bytearray @data"""
    byte, shift, width = location
    data[byte] = set_bits(data[byte], shift, width, value, field)


def lookup(table, index, field=None):
    """Return @table[@index], raising CodecError if @index is not valid"""
    if not 0 <= index < len(table):
        raise errors.CodecError(
            'Index %i out of range for table of %i' % (index, len(table)),
            field)
    return table[index]


def index_of(table, value, field=None):
    """Return the index of @value in @table for encoding"""
    try:
        return list(table).index(value)
    except ValueError:
        raise errors.InvalidValueError(
            '%s: value %r is not supported' % (field or 'value', value))
