"""Per-library build and install markers.

Each library gets a working directory under the build root holding its
build tree, ``build.log`` and two marker files.  A marker contains the
settings fingerprint of the run that completed the phase; a marker whose
fingerprint differs from the current one counts as absent.
"""

import enum
import os
import shutil
import tempfile
from dataclasses import dataclass

BUILD_MARKER = "build-done"
INSTALL_MARKER = "install-done"
LOG_NAME = "build.log"


class State(enum.Enum):
    UNBUILT = "unbuilt"
    NEEDS_BUILD = "needs-build"
    BUILD_CACHED = "build-cached"
    NEEDS_INSTALL = "needs-install"
    INSTALLED = "installed"


@dataclass(frozen=True)
class Plan:
    do_build: bool
    do_install: bool

    @property
    def cached(self):
        return not (self.do_build or self.do_install)


class BuildState:
    """Marker files for one library under *work_root*."""

    def __init__(self, work_root, name):
        self.name = name
        self.directory = os.path.join(work_root, name)

    @property
    def log_path(self):
        return os.path.join(self.directory, LOG_NAME)

    def _marker_path(self, marker):
        return os.path.join(self.directory, marker)

    def read_marker(self, marker):
        """Fingerprint stored in *marker*, or None if absent/unreadable."""
        try:
            with open(self._marker_path(marker), encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError):
            return None

    def write_marker(self, marker, fingerprint):
        # Temp file + rename: a crash leaves either the old marker or the new one.
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{marker}-", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(fingerprint)
            os.replace(tmp, self._marker_path(marker))
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def discard(self):
        """Remove everything recorded for this library."""
        if os.path.isdir(self.directory):
            shutil.rmtree(self.directory)

    def prepare(self):
        os.makedirs(self.directory, exist_ok=True)
        return self.directory

    def status(self, fingerprint, install=False):
        """Current state of the library relative to *fingerprint*."""
        built = self.read_marker(BUILD_MARKER)
        if built is None:
            return State.UNBUILT
        if built != fingerprint:
            return State.NEEDS_BUILD
        installed = self.read_marker(INSTALL_MARKER) == fingerprint
        if installed:
            return State.INSTALLED
        if install:
            return State.NEEDS_INSTALL
        return State.BUILD_CACHED

    def plan(self, fingerprint, clean=False, install=False):
        """Decide what this run has to do for the library.

        A clean request or a stale build marker wipes the library's
        working directory first, so neither marker can outlive the build
        tree it describes.
        """
        do_build = self.read_marker(BUILD_MARKER) != fingerprint
        if clean or do_build:
            self.discard()
            do_build = True
        do_install = install and self.read_marker(INSTALL_MARKER) != fingerprint
        return Plan(do_build=do_build, do_install=do_install)

    def record(self, plan, fingerprint):
        if plan.do_build:
            self.write_marker(BUILD_MARKER, fingerprint)
        if plan.do_install:
            self.write_marker(INSTALL_MARKER, fingerprint)
