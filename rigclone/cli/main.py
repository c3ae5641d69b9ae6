#!/usr/bin/env python
#
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

import argparse
import logging
import os
import sys

from rigclone import logger
from rigclone import rig_common, errors, directory, serialtrace

LOG = logging.getLogger("rigclone")

# Flag option: the tone mode it selects, or "" to clear it
TMODE_FLAGS = (
    ("set_mem_tencon", "Tone"),
    ("set_mem_tencoff", ""),
    ("set_mem_tsqlon", "TSQL"),
    ("set_mem_tsqloff", ""),
    ("set_mem_dtcson", "DTCS"),
    ("set_mem_dtcsoff", ""),
)

# Value options that are copied onto the memory unchanged
MEMORY_VALUES = (
    ("set_mem_name", "name"),
    ("set_mem_tenc", "rtone"),
    ("set_mem_tsql", "ctone"),
    ("set_mem_dtcs", "dtcs"),
    ("set_mem_dtcspol", "dtcs_polarity"),
    ("set_mem_mode", "mode"),
)


def checked_action(valid, fmt):
    """Return an argparse action that accepts only values in @valid,
    reporting others with @fmt"""
    class CheckedAction(argparse.Action):
        def __call__(self, parser, namespace, values, option_string=None):
            value = values[0]
            if value not in valid:
                raise argparse.ArgumentError(self, fmt % value)
            setattr(namespace, self.dest, value)
    return CheckedAction


ToneAction = checked_action(rig_common.TONES, "Invalid tone value: %.1f")
DTCSAction = checked_action(rig_common.ALL_DTCS_CODES,
                            "Invalid DTCS value: %03i")
DTCSPolarityAction = checked_action(rig_common.DTCS_POLARITIES,
                                    "Invalid DTCS polarity: %s")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="rigclone",
        description="Clone, inspect and edit radio channel memories")
    logger.add_version_argument(parser)
    parser.add_argument("-r", "--radio", default=None,
                        help="Radio model (see --list-radios)")
    parser.add_argument("-s", "--serial", default="mmap",
                        help="Serial port, or 'mmap' to work on the image "
                             "file only (default: mmap)")
    parser.add_argument("--sub-device", type=int, default=None,
                        help="Sub-device (band) index for radios that "
                             "have them")
    parser.add_argument("--mmap", default=None,
                        help="Radio memory image file")
    parser.add_argument("--list-radios", action="store_true",
                        help="List radio models")
    parser.add_argument("--list-ports", action="store_true",
                        help="List serial ports")

    clone = parser.add_argument_group("Clone Options")
    clone.add_argument("--download-mmap", action="store_true",
                       help="Download the image from the radio into "
                            "--mmap, or read every channel of a live radio")
    clone.add_argument("--upload-mmap", action="store_true",
                       help="Upload the image in --mmap to the radio, or "
                            "copy its channels to a live radio")

    mems = parser.add_argument_group("Memory/Channel Options")
    mems.add_argument("--list-mem", action="store_true",
                      help="List all memory locations")
    mems.add_argument("--list-special-mem", action="store_true",
                      help="List all special memory locations")
    mems.add_argument("--raw", action="store_true",
                      help="Dump raw memory location")
    mems.add_argument("--get-mem", action="store_true",
                      help="Get and print memory location")
    mems.add_argument("--clear-mem", action="store_true",
                      help="Clear memory location")

    mems.add_argument("--set-mem-name", help="Set memory name")
    mems.add_argument("--set-mem-freq",
                      help="Set memory frequency (in MHz)")
    mems.add_argument("--set-mem-dup",
                      help="Set memory duplex (+,-, or blank)")
    mems.add_argument("--set-mem-offset",
                      help="Set memory duplex offset (in MHz)")
    mems.add_argument("--set-mem-mode",
                      help="Set mode (%s)" % ",".join(rig_common.MODES))
    for flag, tmode in TMODE_FLAGS:
        opt = "--" + flag.replace("_", "-")
        mems.add_argument(opt, action="store_true",
                          help="Turn %s %s" % (
                              tmode or "tone mode",
                              "on" if tmode else "off"))
    mems.add_argument("--set-mem-tenc", type=float, nargs=1,
                      action=ToneAction, help="Set memory encode tone")
    mems.add_argument("--set-mem-tsql", type=float, nargs=1,
                      action=ToneAction, help="Set memory squelch tone")
    mems.add_argument("--set-mem-dtcs", type=int, nargs=1,
                      action=DTCSAction, help="Set memory DTCS code")
    mems.add_argument("--set-mem-dtcspol", nargs=1,
                      action=DTCSPolarityAction,
                      help="Set memory DTCS polarity (NN, NR, RN, RR)")

    logger.add_arguments(parser)
    parser.add_argument("args", metavar="arg", nargs='*',
                        help="Some commands require additional arguments")
    return parser


def parse_memory_number(radio, args):
    """Return the channel number (or special channel name) in @args

    Exits if it is missing or not a channel this radio has.
    """
    if not args:
        LOG.error("You must provide an argument specifying the memory number.")
        sys.exit(1)

    try:
        memnum = int(args[0])
    except ValueError:
        memnum = args[0]

    rf = radio.get_features()
    start, end = rf.memory_bounds
    if isinstance(memnum, int) and start <= memnum <= end:
        return memnum
    elif memnum in rf.valid_special_chans:
        return memnum

    valid = "between %d and %d" % (start, end)
    if rf.valid_special_chans:
        valid += " or one of %s" % ", ".join(rf.valid_special_chans)
    LOG.error("memory number must be %s (got %s)", valid, memnum)
    sys.exit(1)


def list_radios(drivers):
    print("Supported Radios:")
    for info in drivers.list_drivers():
        print("\t%-30s %s (%s)" % (
            directory.radio_class_id(info.rclass), info.description,
            "clone" if info.clone_mode else "live"))


def select_sub_device(radio, index):
    """Return the sub-device at @index, or @radio if it has none"""
    if not radio.get_features().has_sub_devices:
        if index is not None:
            LOG.error("%s has no sub-devices", radio.get_name())
            sys.exit(1)
        return radio

    subs = radio.get_sub_devices()
    if index is None or not 0 <= index < len(subs):
        LOG.error("%s requires --sub-device (0-%i): %s",
                  radio.get_name(), len(subs) - 1,
                  ", ".join(s.VARIANT for s in subs))
        sys.exit(1)
    return subs[index]


def set_memory_checked(radio, mem):
    """Store @mem after validating it, exiting on any validation error"""
    warnings, errs = rig_common.split_validation_msgs(
        radio.validate_memory(mem))
    for msg in warnings:
        LOG.warning("Memory %s: %s", mem.number, msg)
    for msg in errs:
        LOG.error("Memory %s: %s", mem.number, msg)
    if errs:
        sys.exit(1)
    radio.set_memory(mem)


def wants_edit(options):
    return (any(getattr(options, opt) for opt, _field in MEMORY_VALUES) or
            any(getattr(options, flag) for flag, _tmode in TMODE_FLAGS) or
            options.set_mem_freq or options.set_mem_offset or
            options.set_mem_dup is not None)


def edit_memory(radio, memnum, options):
    """Apply the --set-mem-* @options to channel @memnum"""
    mem = radio.get_memory(memnum)
    if mem.empty:
        LOG.info("creating new memory (#%s)", memnum)
        fresh = rig_common.Memory(memnum if isinstance(memnum, int) else 0)
        fresh.extd_number = mem.extd_number
        mem = fresh

    for opt, field in MEMORY_VALUES:
        value = getattr(options, opt)
        if value:
            setattr(mem, field, value)
    if options.set_mem_freq:
        mem.freq = rig_common.parse_freq(options.set_mem_freq)
    if options.set_mem_offset:
        mem.offset = rig_common.parse_freq(options.set_mem_offset)
    if options.set_mem_dup is not None:
        mem.duplex = options.set_mem_dup

    # Later flags win, matching the order they are listed in
    for flag, tmode in TMODE_FLAGS:
        if getattr(options, flag):
            mem.tmode = tmode

    set_memory_checked(radio, mem)


def import_memories(source, radio):
    """Return the channels of @source that @radio can store

    Only channel numbers both radios have are copied. Unused channels are
    kept so that set_memories() erases them. Channels @radio would refuse
    are logged and left out.
    """
    src_lo, src_hi = source.get_features().memory_bounds
    lo, hi = radio.get_features().memory_bounds
    mems = []
    for mem in source.get_memories(max(lo, src_lo), min(hi, src_hi)):
        if mem.empty:
            mems.append(rig_common.Memory(mem.number, empty=True))
            continue
        mem = mem.dupe()
        mem.immutable = []
        mem.extd_number = ""
        warnings, errs = rig_common.split_validation_msgs(
            radio.validate_memory(mem))
        for msg in warnings:
            LOG.warning("Memory %i: %s", mem.number, msg)
        if errs:
            LOG.error("Memory %i not copied: %s", mem.number,
                      "; ".join(str(e) for e in errs))
            continue
        mems.append(mem)
    for error in source.errors:
        LOG.warning(error)
    return mems


def open_radio(options, drivers):
    """Return the radio class and the pipe or image file to open it on

    Returns None after logging why when that is not possible.
    """
    try:
        if options.radio:
            rclass = drivers.get_radio(options.radio)
        elif options.mmap:
            rclass = drivers.get_radio_by_image(options.mmap).__class__
        else:
            print("You must specify a radio model.  See --list-radios.")
            return None
    except (errors.InvalidValueError, errors.ImageDetectFailed,
            errors.ImageMetadataInvalidModel) as e:
        LOG.error(e)
        return None

    if options.serial != "mmap":
        LOG.info("opening %s at %i", options.serial, rclass.BAUD_RATE)
        try:
            return rclass, serialtrace.open_serial(options.serial, rclass)
        except errors.RadioError as e:
            LOG.error(e)
            return None

    image = options.mmap or "%s.img" % options.radio
    if not issubclass(rclass, rig_common.CloneModeRadio):
        LOG.error("%s can only be used with a serial port",
                  rclass.get_name())
        return None
    if not os.path.exists(image):
        LOG.error("Image file '%s' does not exist", image)
        return None
    return rclass, image


def main(args=None, drivers=None):
    parser = build_parser()
    if args is None and len(sys.argv) <= 1:
        parser.print_help()
        return 0

    options = parser.parse_args(args)
    args = [str(x) for x in options.args]
    logger.handle_options(options)

    if drivers is None:
        drivers = directory.build_directory()

    if options.list_radios:
        list_radios(drivers)
        return 0

    if options.list_ports:
        for port in serialtrace.list_ports():
            print(port)
        return 0

    opened = open_radio(options, drivers)
    if opened is None:
        return 1
    rclass, source = opened

    try:
        return _run(options, args, rclass(source), drivers)
    except errors.RadioError as e:
        LOG.error("Radio error: %s", e)
        return 1
    except errors.InvalidDataError as e:
        LOG.error("Invalid data: %s", e)
        return 1
    except (errors.InvalidValueError, ValueError) as e:
        LOG.error("Invalid value: %s", e)
        return 1
    finally:
        if options.serial != "mmap":
            source.close()


def _clone_live(options, radio, drivers):
    radio = select_sub_device(radio, options.sub_device)
    if options.download_mmap:
        _list_memories(radio)
        print("Download successful")
        return 0

    if not options.mmap or not os.path.exists(options.mmap):
        LOG.error("You must specify an existing image to copy with --mmap")
        return 1
    try:
        source = drivers.get_radio_by_image(options.mmap)
    except (errors.ImageDetectFailed, errors.ImageMetadataInvalidModel) as e:
        LOG.error(e)
        return 1
    radio.set_memories(import_memories(source, radio))
    print("Upload successful")
    return 0


def _clone(options, radio):
    if not options.mmap:
        LOG.error("You must specify the image file name with --mmap")
        return 1

    if options.download_mmap:
        radio.sync_in()
        radio.save_mmap(options.mmap)
        print("Download successful")
    else:
        radio.load_mmap(options.mmap)
        radio.sync_out()
        print("Upload successful")
    return 0


def _list_memories(radio):
    for mem in radio.get_memories():
        if not mem.empty or logger.is_visible(logging.INFO):
            print(mem)
    for error in radio.errors:
        LOG.warning(error)


def _print_memories(radio, numbers):
    for number in numbers:
        mem = radio.get_memory(number)
        if not mem.empty or logger.is_visible(logging.INFO):
            print(mem)


def _run(options, args, radio, drivers):
    if options.download_mmap or options.upload_mmap:
        if isinstance(radio, rig_common.LiveRadio):
            return _clone_live(options, radio, drivers)
        return _clone(options, radio)

    image = radio
    radio = select_sub_device(radio, options.sub_device)
    rf = radio.get_features()

    if options.list_mem:
        _list_memories(radio)
        return 0

    if options.list_special_mem:
        _print_memories(radio, sorted(rf.valid_special_chans))
        return 0

    if options.raw:
        print(radio.get_raw_memory(parse_memory_number(radio, args)))
        return 0

    if options.get_mem:
        memnum = parse_memory_number(radio, args)
        try:
            mem = radio.get_memory(memnum)
        except errors.InvalidMemoryLocation:
            mem = rig_common.Memory(memnum if isinstance(memnum, int) else 0)
        print(mem)
        return 0

    if options.set_mem_dup not in (None, "+", "-", ""):
        LOG.error("Invalid duplex value `%s'", options.set_mem_dup)
        LOG.error("Valid values are: '+', '-', ''")
        return 1
    if options.set_mem_mode and options.set_mem_mode not in rig_common.MODES:
        LOG.error("Invalid mode `%s'", options.set_mem_mode)
        return 1

    changed = False
    try:
        if options.clear_mem:
            memnum = parse_memory_number(radio, args)
            if radio.get_memory(memnum).empty:
                LOG.warning("memory %s is already empty, deleting again",
                            memnum)
            radio.erase_memory(memnum)
            changed = True

        if wants_edit(options):
            edit_memory(radio, parse_memory_number(radio, args), options)
            changed = True
    except errors.InvalidMemoryLocation as e:
        LOG.error(e)
        return 1

    if changed and options.mmap and \
            isinstance(image, rig_common.CloneModeRadio):
        image.save_mmap(options.mmap)

    return 0


if __name__ == "__main__":
    sys.exit(main())
