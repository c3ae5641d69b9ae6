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

import logging
import os
from pathlib import Path
import sys

LOG = logging.getLogger(__name__)


class Platform:
    """Where rigclone keeps its files on this operating system"""

    # Characters stripped from file names
    FORBIDDEN_CHARS = ""

    def __init__(self, basepath):
        self._base = basepath

    def config_dir(self):
        return self._base

    def log_dir(self):
        logdir = os.path.join(self.config_dir(), "logs")
        os.makedirs(logdir, exist_ok=True)
        return logdir

    def filter_filename(self, filename):
        """Remove characters the OS does not allow from @filename"""
        return "".join(c for c in filename if c not in self.FORBIDDEN_CHARS)

    def log_file(self, filename):
        """Return the path of the log file named after @filename"""
        filename = self.filter_filename(filename + ".txt")
        return os.path.join(self.log_dir(), filename.replace(" ", "_"))

    def config_file(self, filename):
        return os.path.join(self.config_dir(),
                            self.filter_filename(filename))

    def default_dir(self):
        return "."

    def os_version_string(self):
        return "Unknown Operating System"


class UnixPlatform(Platform):
    FORBIDDEN_CHARS = "/"

    def __init__(self, basepath):
        basepath = Path(basepath or Path(self.default_dir(), ".rigclone"))
        basepath.mkdir(exist_ok=True)
        super().__init__(str(basepath))

    def default_dir(self):
        return str(Path.home())

    def os_version_string(self):
        uname = os.uname()
        try:
            with open("/etc/issue.net") as issue:
                distro = " ".join(issue.read().split())[:64]
        except OSError:
            return " ".join(uname)
        return "%s - %s" % (uname.sysname, distro)


class Win32Platform(Platform):
    FORBIDDEN_CHARS = "/\\:*?\"<>|"

    def __init__(self, basepath=None):
        if not basepath:
            appdata = os.getenv("APPDATA") or "C:\\"
            basepath = os.path.abspath(os.path.join(appdata, "rigclone"))
        if not os.path.isdir(basepath):
            try:
                os.mkdir(basepath)
            except FileExistsError:
                pass
        super().__init__(basepath)

    def default_dir(self):
        return os.path.abspath(os.path.join(os.getenv("USERPROFILE"),
                                            "Desktop"))

    def os_version_string(self):
        ver = sys.getwindowsversion()
        return "Windows %i.%i (build %i)" % (ver.major, ver.minor, ver.build)


PLATFORM = None


def get_platform(basepath=None):
    """Return the platform for this OS, creating it on first use

    @basepath only matters on that first call.
    """
    global PLATFORM

    if not PLATFORM:
        if os.name == "nt":
            PLATFORM = Win32Platform(basepath)
        else:
            PLATFORM = UnixPlatform(basepath)
        LOG.debug('Using %s in %s', PLATFORM.__class__.__name__,
                  PLATFORM.config_dir())

    return PLATFORM
