"""The fixed set of vendored libraries and --build selection."""

import os
import re
from dataclasses import dataclass
from typing import Callable

import recipes
from errors import SelectionError, SourceMissingError


@dataclass(frozen=True)
class Library:
    name: str            # CLI identifier
    directory: str       # vendored checkout under the source root
    check_file: str      # must exist before any work starts
    recipe: Callable

    def source_path(self, source_root):
        return os.path.join(source_root, self.directory)


# Build order: ffmpeg links against every codec above it.
LIBRARIES = (
    Library("protobuf", "protobuf", "CMakeLists.txt", recipes.build_protobuf),
    Library("x264", "x264", "configure", recipes.build_x264),
    Library("x265", "x265", os.path.join("source", "CMakeLists.txt"), recipes.build_x265),
    Library("libvpx", "libvpx", "configure", recipes.build_libvpx),
    Library("opus", "opus", "autogen.sh", recipes.build_opus),
    Library("dav1d", "dav1d", "meson.build", recipes.build_dav1d),
    Library("svt-av1", "SVT-AV1", "CMakeLists.txt", recipes.build_svt_av1),
    Library("opencv", "opencv", "CMakeLists.txt", recipes.build_opencv),
    Library("ffmpeg", "FFmpeg", "configure", recipes.build_ffmpeg),
)

ALL = "all"

_SPLIT_RE = re.compile(r"[\s,]+")


def library_names(order=LIBRARIES):
    return [lib.name for lib in order]


def parse_build_spec(spec, order=LIBRARIES):
    """Parse a --build value into a set of library names.

    Accepts ``all`` or names separated by spaces/commas, case-insensitive.
    Unknown names are rejected rather than silently ignored.
    """
    known = library_names(order)
    tokens = [t.lower() for t in _SPLIT_RE.split(spec.strip()) if t]
    if not tokens:
        raise SelectionError("empty --build value, expected 'all' or library names")
    if ALL in tokens:
        return frozenset(known)

    unknown = [t for t in tokens if t not in known]
    if unknown:
        raise SelectionError(
            f"unknown library {', '.join(repr(u) for u in unknown)} "
            f"(choose from: {ALL}, {', '.join(known)})")
    return frozenset(tokens)


def select_libraries(requested, order=LIBRARIES):
    """Libraries in *order* whose name is in *requested*, in build order."""
    return [lib for lib in order if lib.name in requested]


def check_sources(selected, source_root):
    """Raise SourceMissingError for the first selected library without sources."""
    for lib in selected:
        path = os.path.join(lib.source_path(source_root), lib.check_file)
        if not os.path.isfile(path):
            raise SourceMissingError(lib.directory, lib.source_path(source_root))
