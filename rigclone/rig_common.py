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

import base64
import json
import logging
import math
import os
import re
import sys

from rigclone import errors, logger, memmap, RIGCLONE_VERSION

LOG = logging.getLogger(__name__)

# The 50 standard CTCSS tones
TONES = (
    67.0, 69.3, 71.9, 74.4, 77.0, 79.7, 82.5,
    85.4, 88.5, 91.5, 94.8, 97.4, 100.0, 103.5,
    107.2, 110.9, 114.8, 118.8, 123.0, 127.3,
    131.8, 136.5, 141.3, 146.2, 151.4, 156.7,
    159.8, 162.2, 165.5, 167.9, 171.3, 173.8,
    177.3, 179.9, 183.5, 186.2, 189.9, 192.8,
    196.6, 199.5, 203.5, 206.5, 210.7, 218.1,
    225.7, 229.1, 233.6, 241.8, 250.3, 254.1,
)

# The 104 standard DTCS codes
DTCS_CODES = (
    23,  25,  26,  31,  32,  36,  43,  47,  51,  53,  54,
    65,  71,  72,  73,  74,  114, 115, 116, 122, 125, 131,
    132, 134, 143, 145, 152, 155, 156, 162, 165, 172, 174,
    205, 212, 223, 225, 226, 243, 244, 245, 246, 251, 252,
    255, 261, 263, 265, 266, 271, 274, 306, 311, 315, 325,
    331, 332, 343, 346, 351, 356, 364, 365, 371, 411, 412,
    413, 423, 431, 432, 445, 446, 452, 454, 455, 462, 464,
    465, 466, 503, 506, 516, 523, 526, 532, 546, 565, 606,
    612, 624, 627, 631, 632, 654, 662, 664, 703, 712, 723,
    731, 732, 734, 743, 754,
)

# Every three-digit octal code, written in decimal digits
ALL_DTCS_CODES = tuple(int('%o' % code) for code in range(0o1000))

CROSS_MODES = (
    "Tone->Tone",
    "DTCS->",
    "->DTCS",
    "Tone->DTCS",
    "DTCS->Tone",
    "->Tone",
    "DTCS->DTCS",
    "Tone->",
)

# Shared by every driver, so a channel keeps its meaning when copied between
# models. Never reorder or remove entries.
MODES = ("WFM", "FM", "NFM", "AM", "NAM", "DV", "USB", "LSB", "CW", "RTTY",
         "DIG", "PKT", "NCW", "NCWR", "CWR", "P25", "Auto", "RTTYR",
         "FSK", "FSKR", "DMR", "DN", "DD")

TONE_MODES = ("", "Tone", "TSQL", "DTCS", "DTCS-R", "TSQL-R", "Cross")

TUNING_STEPS = (
    5.0, 6.25, 10.0, 12.5, 15.0, 20.0, 25.0, 30.0, 50.0, 100.0,
    125.0, 200.0, 9.0, 1.0, 2.5,
)

COMMON_TUNING_STEPS = (5.0, 10.0, 15.0, 20.0, 25.0, 30.0, 50.0, 100.0)

SKIP_VALUES = ("", "S", "P")

DTCS_POLARITIES = ("NN", "NR", "RN", "RR")

DUPLEXES = ("", "+", "-", "split", "off")

CHARSET_UPPER_NUMERIC = "ABCDEFGHIJKLMNOPQRSTUVWXYZ 1234567890"
CHARSET_ALPHANUMERIC = \
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz 1234567890"
CHARSET_ASCII = "".join(chr(x) for x in range(ord(" "), ord("~") + 1))

# Split offsets bigger than this are stored as a separate tx frequency
MAX_DUPLEX_OFFSET = 70000000


def valid_tone(value):
    return isinstance(value, float) and 50 < value < 300


def watts_to_dBm(watts):
    """Convert @watts to dBm"""
    return 10 * math.log10(watts) + 30


def dBm_to_watts(dBm):
    """Convert @dBm to watts, rounded to a tenth"""
    return round(10 ** (dBm / 10) / 1000, 1)


class PowerLevel:
    """A named transmit power setting

    Levels compare (and convert with int() and float()) by their
    strength in dBm, so levels from different radios can be matched up.
    """

    def __init__(self, label, watts=0, dBm=0):
        self._label = label
        self._power = float(watts_to_dBm(watts) if watts else dBm)

    def __str__(self):
        return str(self._label)

    def __repr__(self):
        return "%s (%i dBm)" % (self._label, self._power)

    def __float__(self):
        return self._power

    def __int__(self):
        return int(self._power)

    def __bool__(self):
        return int(self) != 0

    def __hash__(self):
        return hash(self._power)

    def __eq__(self, other):
        return other is not None and float(self) == float(other)

    def __lt__(self, other):
        return float(self) < float(other)

    def __gt__(self, other):
        return float(self) > float(other)


class AutoNamedPowerLevel(PowerLevel):
    """A power level labeled with its own wattage"""

    def __init__(self, watts):
        label = ('%iW' if watts >= 10 else '%.1fW') % watts
        super().__init__(label, watts=watts)


def parse_power(powerstr):
    """Parse a wattage like "5", "2.5W" or "0.5 W" into a power level"""
    match = re.fullmatch(r'\s*(\d+(?:\.\d*)?|\.\d+)\s*[Ww]?\s*', powerstr)
    if not match:
        raise ValueError('Invalid power specification: %r' % powerstr)
    value = match.group(1)
    return AutoNamedPowerLevel(int(value) if value.isdigit()
                               else float(value))


def parse_freq(freqstr: str) -> int:
    """Parse a frequency in MHz and return it in integral Hz

    A trailing " MHz" or " kHz" unit is also accepted.
    """
    freqstr = freqstr.strip()
    if not freqstr:
        return 0

    value, _sep, unit = freqstr.partition(" ")
    if unit == "kHz":
        return int(value) * 1000
    elif unit not in ("", "MHz"):
        raise ValueError("Invalid frequency unit: %s" % unit)

    mhz, _dot, fraction = value.partition(".")
    if len(fraction) > 6:
        raise ValueError("Invalid kHz value: %s" % fraction)
    return int(mhz or "0") * 1000000 + int(fraction.ljust(6, "0"))


def format_freq(freq: int) -> str:
    """Format a frequency in Hz as MHz with six decimal places"""
    return "%i.%06i" % (freq // 1000000, freq % 1000000)


def to_MHz(val):
    """Convert @val in MHz to Hz"""
    return val * 1000000


def to_kHz(val):
    """Convert @val in kHz to Hz"""
    return val * 1000


def from_MHz(val):
    """Convert @val in Hz to whole MHz"""
    return val // 1000000


def from_kHz(val):
    """Convert @val in Hz to whole kHz"""
    return val // 1000


def in_range(freq, ranges):
    """Return True if @freq falls inside any (lo, hi) pair in @ranges"""
    return any(lo <= freq <= hi for lo, hi in ranges)


# Tuning steps in kHz, simplest first
DEFAULT_STEP_ORDER = (5.0, 10.0, 12.5, 6.25, 2.5, 1.0, 0.5, 8.33, 0.25)


def _step_reaches(step, freq):
    if step == 8.33:
        # Aviation channels sit on thirds of 25 kHz, truncated to 10 Hz
        return freq % 25000 in (0, 8330, 16660)
    return freq % int(step * 1000) == 0


def required_step(freq, allowed=None):
    """Return the first step in @allowed that can land on @freq"""
    if allowed is None:
        allowed = DEFAULT_STEP_ORDER
    for step in allowed:
        if _step_reaches(step, freq):
            return step
    raise errors.InvalidDataError(
        "Unable to find a supported tuning step for %s" % format_freq(freq))


class ImmutableValueError(ValueError):
    pass


class Memory:
    """A single radio channel, independent of how any model stores it"""

    _defaults = {
        "number": 0,
        "extd_number": "",
        "name": "",
        "freq": 0,
        "offset": 600000,
        "duplex": "",
        "mode": "FM",
        "tmode": "",
        "rtone": 88.5,
        "ctone": 88.5,
        "dtcs": 23,
        "rx_dtcs": 23,
        "dtcs_polarity": "NN",
        "cross_mode": "Tone->Tone",
        "skip": "",
        "tuning_step": 5.0,
        "power": None,
        "comment": "",
        "empty": False,
        "immutable": [],
    }

    # Either a collection of allowed values or a predicate
    _valid_map = {
        "rtone": valid_tone,
        "ctone": valid_tone,
        "dtcs": ALL_DTCS_CODES,
        "rx_dtcs": ALL_DTCS_CODES,
        "tmode": TONE_MODES,
        "dtcs_polarity": DTCS_POLARITIES,
        "cross_mode": CROSS_MODES,
        "mode": MODES,
        "duplex": DUPLEXES,
        "skip": SKIP_VALUES,
        "empty": (True, False),
    }

    def __init__(self, number=0, empty=False, name=""):
        for field, default in self._defaults.items():
            if isinstance(default, list):
                default = list(default)
            self.__dict__[field] = default
        self.number = number
        self.empty = empty
        self.name = name

    def __setattr__(self, name, val):
        if name not in self._defaults:
            raise ValueError("No such attribute `%s'" % name)
        if name in self.immutable:
            raise ImmutableValueError(
                "Field %s is not mutable on this memory" % name)

        valid = self._valid_map.get(name)
        if callable(valid) and not valid(val):
            raise ValueError("`%s' is not a valid value for `%s'" % (
                val, name))
        elif valid is not None and not callable(valid) and val not in valid:
            raise ValueError("`%s' is not in valid list: %s" % (val, valid))

        self.__dict__[name] = val

    def __repr__(self):
        ident, vals = self.debug_dump()
        return '<Memory %s: %s>' % (
            ident, ','.join('%s=%r' % item for item in vals))

    def debug_dump(self):
        """Return (ident, [(field, value), ...]) for debug output"""
        if self.extd_number:
            ident = '%s(%i)' % (self.extd_number, self.number)
        else:
            ident = str(self.number)
        return ident, [(k, v) for k, v in self.__dict__.items()
                       if k not in ('number', 'extd_number')]

    def debug_diff(self, other, delim='/'):
        """Describe the fields that differ between @self and @other"""
        my_ident, mine = self.debug_dump()
        their_ident, theirs = other.debug_dump()
        mine = dict(mine)
        theirs = dict(theirs)

        diffs = []
        if my_ident != their_ident:
            diffs.append('ident=%s%s%s' % (my_ident, delim, their_ident))
        for field in sorted(mine.keys() | theirs.keys()):
            a = mine.get(field, '<missing>')
            b = theirs.get(field, '<missing>')
            if a != b:
                diffs.append('%s=%r%s%r' % (field, a, delim, b))
        return ','.join(diffs)

    def dupe(self):
        """Return a copy of @self that shares no lists with it"""
        mem = self.__class__()
        mem.clone(self)
        return mem

    def clone(self, source):
        """Take on every field of @source, sharing no lists with it"""
        self.__dict__.update(
            (k, list(v) if isinstance(v, list) else v)
            for k, v in source.__dict__.items())

    def format_freq(self):
        return format_freq(self.freq)

    def parse_freq(self, freqstr):
        self.freq = parse_freq(freqstr)
        return self.freq

    def __str__(self):
        def flag(tmode):
            return "*" if self.tmode == tmode else " "

        return \
            "Memory %s: %s%s%s %s (%s) r%.1f%s c%.1f%s d%03i%s%s [%.2f]" % (
                self.extd_number or self.number,
                format_freq(self.freq),
                self.duplex or "/",
                format_freq(self.offset),
                self.mode,
                self.name,
                self.rtone, flag("Tone"),
                self.ctone, flag("TSQL"),
                self.dtcs, flag("DTCS"),
                self.dtcs_polarity,
                self.tuning_step)


class DVMemory(Memory):
    """A Memory that also carries D-STAR routing"""

    _defaults = dict(Memory._defaults,
                     dv_urcall="CQCQCQ",
                     dv_rpt1call="",
                     dv_rpt2call="",
                     dv_code=0)

    _valid_map = dict(Memory._valid_map, dv_code=range(100))

    def __str__(self):
        return "%s <%s,%s,%s>" % (super().__str__(), self.dv_urcall,
                                  self.dv_rpt1call, self.dv_rpt2call)


class ValidationMessage(str):
    pass


class ValidationWarning(ValidationMessage):
    """The memory can be stored, but not exactly as given"""
    pass


class ValidationError(ValidationMessage):
    """The memory cannot be stored on this radio"""
    pass


def split_validation_msgs(msgs):
    """Return (warnings, errors) from a list of validation messages"""
    return ([m for m in msgs if isinstance(m, ValidationWarning)],
            [m for m in msgs if isinstance(m, ValidationError)])


def _is_bool(v):
    return v in (True, False)


def _is_list(v):
    return hasattr(v, '__iter__')


def _is_str(v):
    return isinstance(v, str)


def _is_count(v):
    return isinstance(v, int) and v >= 0


def _is_pair(v):
    return len(v) == 2


def _positive_list(v):
    return all(x > 0 for x in v)


def _tone_list(v):
    return all(valid_tone(x) for x in v)


# (name, check, default, description)
_FEATURES = (
    ("has_dtcs", _is_bool, True,
     "DTCS tone mode is available"),
    ("has_rx_dtcs", _is_bool, False,
     "Separate DTCS codes can be used for transmit and receive"),
    ("has_dtcs_polarity", _is_bool, True,
     "The DTCS polarity can be changed"),
    ("has_mode", _is_bool, True,
     "More than one emission mode is supported"),
    ("has_offset", _is_bool, True,
     "Channels store a transmit offset"),
    ("has_name", _is_bool, True,
     "Channels store an alphanumeric name"),
    ("has_bank", _is_bool, True,
     "Channels may be placed into banks"),
    ("has_tuning_step", _is_bool, True,
     "Channels store their tuning step"),
    ("has_ctone", _is_bool, True,
     "Repeater and squelch tones are stored separately"),
    ("has_cross", _is_bool, False,
     "Transmit and receive can use different tone modes"),
    ("has_nostep_tuning", _is_bool, False,
     "Any frequency can be stored, regardless of tuning step"),
    ("has_comment", _is_bool, False,
     "Channels store a comment"),
    ("has_variable_power", _is_bool, False,
     "Any power between the lowest and highest valid level is allowed"),
    ("has_dv", _is_bool, False,
     "Channels store digital voice (D-STAR) routing"),
    ("has_sub_devices", _is_bool, False,
     "The radio is split into semi-independent sub-devices"),
    ("can_odd_split", _is_bool, False,
     "Channels can store an independent transmit frequency"),
    ("can_delete", _is_bool, True,
     "Channels can be erased"),
    ("requires_call_lists", _is_bool, True,
     "[D-STAR] Callsigns must come from the radio's own lists"),

    ("valid_modes", _is_list, list(MODES),
     "Supported emission modes"),
    ("valid_tmodes", _is_list, [],
     "Supported tone squelch modes"),
    ("valid_duplexes", _is_list, ["", "+", "-"],
     "Supported duplex settings"),
    ("valid_tuning_steps", _positive_list, list(COMMON_TUNING_STEPS),
     "Supported tuning steps, in kHz"),
    ("valid_bands", _is_list, [],
     "Supported frequency ranges, as [lo, hi) pairs in Hz"),
    ("valid_skips", _is_list, ["", "S"],
     "Supported scan skip settings"),
    ("valid_power_levels", _is_list, [],
     "Supported power levels"),
    ("valid_characters", _is_str, CHARSET_UPPER_NUMERIC,
     "Characters allowed in a channel name"),
    ("valid_name_length", _is_count, 6,
     "Longest channel name"),
    ("valid_cross_modes", _is_list, list(CROSS_MODES),
     "Supported cross tone modes"),
    ("valid_tones", _tone_list, list(TONES),
     "Supported CTCSS tones"),
    ("valid_dtcs_pols", _is_list, ["NN", "RN", "NR", "RR"],
     "Supported DTCS polarities"),
    ("valid_dtcs_codes", _is_list, list(DTCS_CODES),
     "Supported DTCS codes"),
    ("valid_special_chans", _is_list, [],
     "Names of the special (non-numbered) channels"),
    ("memory_bounds", _is_pair, (0, 1),
     "Lowest and highest channel numbers"),
)


class RadioFeatures:
    """The capabilities of one radio model

    Every attribute is checked when it is set, so a driver cannot
    advertise a malformed feature.
    """
    _valid_map = {name: check for name, check, _d, _doc in _FEATURES}

    def __init__(self):
        self.__docs = {}
        for name, _check, default, doc in _FEATURES:
            if isinstance(default, list):
                default = list(default)
            self.init(name, default, doc)

    def __setattr__(self, name, val):
        if name.startswith("_"):
            self.__dict__[name] = val
            return

        check = self._valid_map.get(name)
        if check is None:
            raise ValueError("No such attribute `%s'" % name)
        try:
            ok = check(val)
        except TypeError:
            ok = False
        if not ok:
            raise ValueError('Invalid value %r for attribute %r' % (
                val, name))

        self.__dict__[name] = val

    def __getattr__(self, name):
        raise AttributeError("No such feature `%s'" % name)

    def __getitem__(self, name):
        return self.__dict__[name]

    def init(self, attribute, default, doc=None):
        """Set feature @attribute to @default and record its @doc"""
        setattr(self, attribute, default)
        self.__docs[attribute] = doc

    def get_doc(self, attribute):
        return self.__docs[attribute]

    def is_a_feature(self, name):
        return name in self._valid_map

    def _in_bands(self, freq):
        return any(lo <= freq < hi for lo, hi in self.valid_bands)

    def _check_location(self, mem):
        lo, hi = self.memory_bounds
        if lo <= mem.number <= hi or \
                mem.extd_number in self.valid_special_chans:
            return []
        return [ValidationWarning("Location %i is out of range" %
                                  mem.number)]

    def _check_modes(self, mem):
        msgs = []
        if (self.valid_modes and mem.mode not in self.valid_modes and
                mem.mode != "Auto" and 'mode' not in mem.immutable):
            msgs.append(ValidationError("Mode %s not supported" % mem.mode))

        if self.valid_tmodes and mem.tmode not in self.valid_tmodes:
            msgs.append(ValidationError("Tone mode %s not supported" %
                                        mem.tmode))
        elif (mem.tmode == "Cross" and self.valid_cross_modes and
                mem.cross_mode not in self.valid_cross_modes):
            msgs.append(ValidationError("Cross tone mode %s not supported" %
                                        mem.cross_mode))
        return msgs

    def _check_tones(self, mem):
        msgs = []
        if self.valid_tones:
            for tone in (mem.rtone, mem.ctone):
                if tone not in self.valid_tones:
                    msgs.append(ValidationError("Tone %.1f not supported" %
                                                tone))
        if self.has_dtcs_polarity and \
                mem.dtcs_polarity not in self.valid_dtcs_pols:
            msgs.append(ValidationError("DTCS Polarity %s not supported" %
                                        mem.dtcs_polarity))
        if self.valid_dtcs_codes:
            for code in (mem.dtcs, mem.rx_dtcs):
                if code not in self.valid_dtcs_codes:
                    msgs.append(ValidationError(
                        "DTCS Code %03i not supported" % code))
        return msgs

    def _check_duplex_step(self, mem):
        msgs = []
        if self.valid_duplexes and mem.duplex not in self.valid_duplexes:
            msgs.append(ValidationError("Duplex %s not supported" %
                                        mem.duplex))

        if self.valid_tuning_steps and not self.has_nostep_tuning:
            if mem.tuning_step not in self.valid_tuning_steps:
                msgs.append(ValidationError(
                    "Tuning step %.2f not supported" % mem.tuning_step))
            try:
                required_step(mem.freq, self.valid_tuning_steps)
            except errors.InvalidDataError as e:
                msgs.append(ValidationError(e))
        return msgs

    def _check_bands(self, mem):
        if not self.valid_bands:
            return []

        msgs = []
        if not self._in_bands(mem.freq):
            msgs.append(ValidationError(
                "Frequency %s is out of supported range" %
                format_freq(mem.freq)))

        txfreq = {"split": mem.offset,
                  "+": mem.freq + mem.offset,
                  "-": mem.freq - mem.offset}.get(mem.duplex)
        if self.valid_duplexes and txfreq is not None and \
                not self._in_bands(txfreq):
            msgs.append(ValidationError(
                "Tx freq %s is out of supported range" %
                format_freq(txfreq)))
        return msgs

    def _check_power(self, mem):
        if not (mem.power and self.valid_power_levels):
            return []
        if self.has_variable_power:
            if (mem.power < min(self.valid_power_levels) or
                    mem.power > max(self.valid_power_levels)):
                return [ValidationWarning(
                    "Power level %s is out of radio's range" % mem.power)]
        elif mem.power not in self.valid_power_levels:
            return [ValidationWarning("Power level %s not supported" %
                                      mem.power)]
        return []

    def _check_name(self, mem):
        bad = [c for c in mem.name if c not in self.valid_characters]
        if self.valid_characters and bad:
            return [ValidationWarning("Name character `%s' not supported" %
                                      bad[0])]
        return []

    def validate_memory(self, mem):
        """Return the warnings and errors that storing @mem on this radio
        would run into. @mem is not changed."""
        msgs = []
        for check in (self._check_location,
                      self._check_modes,
                      self._check_tones,
                      self._check_duplex_step,
                      self._check_bands,
                      self._check_power,
                      self._check_name):
            msgs.extend(check(mem))
        return msgs


class Status:
    """Progress of a clone operation"""

    def __init__(self, msg="Unknown", cur=0, max=100):
        self.name = "Job"
        self.msg = msg
        self.cur = cur
        self.max = max

    def __str__(self):
        try:
            pct = self.cur * 100.0 / self.max
            bar = "=" * (int(pct) // 10)
        except (ValueError, ZeroDivisionError):
            pct = 0.0
            bar = "?" * 10
        return "|%-10s| %2.1f%% %s" % (bar, pct, self.msg)


def console_status(status):
    """Draw @status as a progress bar on stdout"""
    if not logger.is_visible(logging.WARN):
        return
    sys.stdout.write("\r%s" % status)
    if status.cur == status.max:
        sys.stdout.write(os.linesep)


class Alias:
    VENDOR = "Unknown"
    MODEL = "Unknown"
    VARIANT = ""


class Radio(Alias):
    """Base class for all radio drivers"""
    BAUD_RATE = 9600
    # Use RTS/CTS flow control
    HARDWARE_FLOW = False
    # Assert DTR when opening the port
    WANTS_DTR = True
    # Assert RTS when opening the port
    WANTS_RTS = True

    def __init__(self, pipe):
        self.errors = []
        self.pipe = pipe

    def status_fn(self, status):
        """Report clone progress

        Transfer loops call this after every block or channel and wait
        for it to return, so it must not block.
        """
        console_status(status)

    @classmethod
    def get_name(cls) -> str:
        return "%s %s" % (cls.VENDOR, cls.MODEL)

    def set_pipe(self, pipe) -> None:
        self.pipe = pipe

    def get_features(self) -> RadioFeatures:
        return RadioFeatures()

    def get_memory(self, number: int | str) -> Memory:
        """Decode the channel at @number

        An unused channel comes back with empty set. Fields the radio
        will not let the user change are listed in Memory.immutable.
        Reading a channel never changes the radio.
        """
        raise NotImplementedError()

    def set_memory(self, memory: Memory) -> None:
        """Store @memory in its channel

        @memory itself is left untouched. Callers are expected to have
        checked it with validate_memory() first.
        """
        raise NotImplementedError()

    def erase_memory(self, number: int | str) -> None:
        if isinstance(number, str):
            mem = Memory(empty=True)
            mem.extd_number = number
        else:
            mem = Memory(number, empty=True)
        self.set_memory(mem)

    def get_memories(self, lo=None, hi=None):
        """Decode every channel from @lo to @hi

        A channel that fails to decode is logged, noted in self.errors and
        left out. The rest of the range is still returned.
        """
        first, last = self.get_features().memory_bounds
        lo = first if lo is None else lo
        hi = last if hi is None else hi

        mems = []
        total = hi - lo + 1
        for number in range(lo, hi + 1):
            try:
                mems.append(self.get_memory(number))
            except errors.CodecError as e:
                LOG.error('Unable to decode memory %i: %s', number, e)
                self.errors.append('Memory %i: %s' % (number, e))
            self._memory_done('Read', number, number - lo + 1, total)
        return mems

    def _memory_done(self, action, number, done, total):
        pass

    def get_raw_memory(self, number: int | str) -> str:
        return 'Memory<%r>' % number

    def filter_name(self, name: str) -> str:
        """Trim @name to the length and characters the radio supports"""
        rf = self.get_features()
        if rf.valid_characters == rf.valid_characters.upper():
            name = name.upper()
        return "".join(c for c in name[:rf.valid_name_length]
                       if c in rf.valid_characters)

    def get_sub_devices(self) -> list[Alias]:
        return []

    def validate_memory(self, mem: Memory) -> list[ValidationMessage]:
        return self.get_features().validate_memory(mem)

    def check_set_memory_immutable_policy(self, existing: Memory, new: Memory):
        """Refuse @new if it changes a field that is immutable on @existing

        This never talks to the radio.
        """
        for field in existing.immutable:
            if getattr(existing, field) != getattr(new, field):
                raise ImmutableValueError(
                    'Field %s is not mutable on this memory' % field)


class CloneModeRadio(Radio):
    """A radio that is programmed by copying its whole memory image

    The image is kept in a MemoryMapBytes. It can come from the radio
    (sync_in), from a file or from a buffer passed to the constructor.
    """
    FILE_EXTENSION = "img"
    # Separates the raw image from its metadata in .img files
    MAGIC = b'\x00\xffchirp\xeeimg\x00\x01'

    _memsize = 0

    def __init__(self, pipe):
        self._mmap = None
        self._metadata = {}
        if isinstance(pipe, str):
            Radio.__init__(self, None)
            self.load_mmap(pipe)
        elif isinstance(pipe, memmap.MemoryMapBytes):
            Radio.__init__(self, None)
            self._mmap = pipe
            self.process_mmap()
        else:
            Radio.__init__(self, pipe)

    def get_memsize(self):
        return self._memsize

    @classmethod
    def match_model(cls, filedata, filename):
        """Return True if @filedata looks like an image from this model

        By default an image is claimed when it is exactly our size.
        """
        return bool(cls._memsize) and len(filedata) == cls._memsize

    def sync_in(self):
        """Download the image from the radio"""
        raise errors.UnsupportedOperationError(
            '%s does not support download' % self.get_name())

    def sync_out(self):
        """Upload the image to the radio"""
        raise errors.UnsupportedOperationError(
            '%s does not support upload' % self.get_name())

    def process_mmap(self):
        """Called whenever a new image has been loaded or downloaded"""
        pass

    def get_mmap(self):
        return self._mmap

    @classmethod
    def _strip_metadata(cls, raw_data):
        data, magic, blob = raw_data.partition(cls.MAGIC)
        if not magic:
            LOG.debug('Image data has no metadata blob')
            return raw_data, {}

        metadata = {}
        try:
            metadata = json.loads(base64.b64decode(blob).decode())
        except (ValueError, TypeError) as e:
            LOG.error('Failed to parse image metadata: %s', e)
        if not isinstance(metadata, dict):
            LOG.error('Image metadata is not a dict: %r', metadata)
            metadata = {}
        elif metadata:
            LOG.debug('Loaded metadata: %s', metadata)
        return data, metadata

    def _make_metadata(self):
        metadata = dict(self._metadata)
        # These always describe the driver that wrote the file
        metadata.update({
            'rclass': self.__class__.__name__,
            'vendor': self.VENDOR,
            'model': self.MODEL,
            'variant': self.VARIANT,
            'rigclone_version': RIGCLONE_VERSION,
        })
        return base64.b64encode(json.dumps(metadata).encode())

    def load_mmap(self, filename):
        with open(filename, "rb") as mapfile:
            data = mapfile.read()
        data, metadata = self._strip_metadata(data)
        self._metadata.update(metadata)
        version = self._metadata.get('rigclone_version')
        if version and is_version_newer(version):
            LOG.warning('Image is from version %s but we are %s',
                        version, RIGCLONE_VERSION)
        self._mmap = memmap.MemoryMapBytes(bytes(data))
        self.process_mmap()

    def save_mmap(self, filename):
        """Write the image to @filename, followed by our metadata if it
        is an .img file"""
        try:
            with open(filename, "wb") as mapfile:
                mapfile.write(self._mmap.get_packed())
                if filename.lower().endswith(".img"):
                    mapfile.write(self.MAGIC + self._make_metadata())
        except OSError as e:
            raise errors.RadioError("File Access Error: %s" % e)

    @property
    def metadata(self):
        return dict(self._metadata)

    @metadata.setter
    def metadata(self, values):
        self._metadata.update(values)


class LiveRadio(Radio):
    """A radio that is read and written one channel at a time

    Every channel is a round trip to the radio, so get_memories() and
    set_memories() report progress through status_fn after each one.
    """

    def _memory_done(self, action, number, done, total):
        self.status_fn(Status("%s memory %s" % (action, number), done, total))

    def set_memories(self, mems):
        """Store each of @mems in turn, erasing the empty ones"""
        for i, mem in enumerate(mems, 1):
            self.set_memory(mem)
            self._memory_done(mem.empty and 'Erased' or 'Wrote',
                              mem.extd_number or mem.number, i, len(mems))


def split_to_offset(mem, rxfreq, txfreq):
    """Set freq, duplex and offset on @mem from separate rx and tx
    frequencies"""
    mem.freq = rxfreq
    shift = txfreq - rxfreq
    if abs(shift) > MAX_DUPLEX_OFFSET:
        mem.duplex = 'split'
        mem.offset = txfreq
        return
    if shift:
        mem.duplex = '+' if shift > 0 else '-'
    mem.offset = abs(shift)


# Which Memory field holds the value for a tone spec, by direction
_TX_TONE_FIELDS = {"Tone": "rtone", "DTCS": "dtcs"}
_RX_TONE_FIELDS = {"Tone": "ctone", "DTCS": "rx_dtcs"}


def split_tone_decode(mem, txtone, rxtone):
    """Set the tone fields of @mem from separate transmit and receive specs

    Each spec is a (mode, value, polarity) tuple, such as
    (None, None, None), ("Tone", 123.0, None) or ("DTCS", 23, "N").
    """
    txmode, txval, txpol = txtone
    rxmode, rxval, rxpol = rxtone
    txmode = txmode or ""
    rxmode = rxmode or ""

    mem.dtcs_polarity = (txpol or "N") + (rxpol or "N")

    if not txmode and not rxmode:
        return
    elif txmode == "Tone" and not rxmode:
        mem.tmode = "Tone"
        mem.rtone = txval
    elif txmode == rxmode == "Tone" and txval == rxval:
        mem.tmode = "TSQL"
        mem.ctone = txval
    elif txmode == rxmode == "DTCS" and txval == rxval:
        mem.tmode = "DTCS"
        mem.dtcs = txval
    else:
        mem.tmode = "Cross"
        mem.cross_mode = "%s->%s" % (txmode, rxmode)
        if txmode in _TX_TONE_FIELDS:
            setattr(mem, _TX_TONE_FIELDS[txmode], txval)
        if rxmode in _RX_TONE_FIELDS:
            setattr(mem, _RX_TONE_FIELDS[rxmode], rxval)


def split_tone_encode(mem):
    """Return the (transmit, receive) tone specs for @mem

    The specs have the same shape split_tone_decode() takes.
    """
    if mem.tmode == "TSQL":
        tx = rx = ("Tone", mem.ctone)
    elif mem.tmode == "DTCS":
        tx = rx = ("DTCS", mem.dtcs)
    else:
        if mem.tmode == "Cross":
            txmode, rxmode = mem.cross_mode.split("->", 1)
        elif mem.tmode == "Tone":
            txmode, rxmode = "Tone", ""
        else:
            txmode = rxmode = ""
        tx = (txmode, getattr(mem, _TX_TONE_FIELDS[txmode])
              if txmode in _TX_TONE_FIELDS else None)
        rx = (rxmode, getattr(mem, _RX_TONE_FIELDS[rxmode])
              if rxmode in _RX_TONE_FIELDS else None)

    txpol = mem.dtcs_polarity[0] if tx[0] == "DTCS" else None
    rxpol = mem.dtcs_polarity[1] if rx[0] == "DTCS" else None
    return tx + (txpol,), rx + (rxpol,)


def _version_tuple(version):
    if '.' not in version:
        return (0,)
    return tuple(int(part) for part in version.split('.'))


def is_version_newer(version):
    """Return True if @version is newer than this rigclone"""
    try:
        theirs = _version_tuple(version)
    except ValueError as e:
        LOG.error('Failed to parse version %r: %s', version, e)
        theirs = (0,)
    return theirs > _version_tuple(RIGCLONE_VERSION)
