"""Compiler discovery, required-tool checks and the settings fingerprint.

The fingerprint ties cached build/install markers to the toolchain and
install prefix they were produced with: change any of the four and every
library is rebuilt on the next run.
"""

import json
import os
import shutil
from dataclasses import dataclass

from errors import ToolchainError, ToolNotFoundError

# Probed in order when the caller has not set CC/CXX/LD.
# (family, C compiler, C++ compiler, linker driver)
_COMPILER_FAMILIES = (
    ("clang", "clang", "clang++", "clang++"),
    ("gcc", "gcc", "g++", "g++"),
    ("cc", "cc", "c++", "c++"),
)

_TOOLCHAIN_VARS = ("CC", "CXX", "LD")

# Needed by every run regardless of selection.
_ALWAYS_REQUIRED = ("cmake", "ninja")

# Extra tools pulled in by individual libraries.
_LIBRARY_TOOLS = {
    "x264": ("make", "nasm"),
    "x265": ("nasm",),
    "libvpx": ("make", "yasm"),
    "opus": ("make", "autoreconf", "libtoolize"),
    "dav1d": ("meson", "nasm"),
    "svt-av1": ("nasm",),
    "ffmpeg": ("make", "pkg-config", "nasm"),
}


@dataclass(frozen=True)
class Toolchain:
    cc: str
    cxx: str
    ld: str
    family: str = "environment"

    def as_env(self):
        """CC/CXX/LD mapping, leaving out components the caller left unset."""
        env = {}
        for key, value in zip(_TOOLCHAIN_VARS, (self.cc, self.cxx, self.ld)):
            if value:
                env[key] = value
        return env


def fingerprint(toolchain, prefix):
    """Canonical settings string for *toolchain* and install *prefix*.

    JSON keeps the encoding injective: two fingerprints are equal only
    when all four components match exactly.
    """
    rec = {
        "cc": toolchain.cc,
        "cxx": toolchain.cxx,
        "ld": toolchain.ld,
        "prefix": str(prefix),
    }
    return json.dumps(rec, sort_keys=True, separators=(",", ":"))


def resolve_toolchain(environ=None, which=None):
    """Return the toolchain for this run.

    An explicit CC, CXX or LD from the caller wins outright; partial
    overrides are taken as-is.  Otherwise the first compiler family found
    on PATH supplies all three.
    """
    if environ is None:
        environ = os.environ
    which = which or shutil.which
    if any(environ.get(var) for var in _TOOLCHAIN_VARS):
        return Toolchain(
            cc=environ.get("CC", ""),
            cxx=environ.get("CXX", ""),
            ld=environ.get("LD", ""),
        )

    for family, cc_name, cxx_name, ld_name in _COMPILER_FAMILIES:
        cc = which(cc_name)
        if cc is None:
            continue
        # Fall back to the C driver when the C++ one is missing
        cxx = which(cxx_name) or cc
        ld = which(ld_name) or cc
        return Toolchain(cc=cc, cxx=cxx, ld=ld, family=family)

    names = ", ".join(f[1] for f in _COMPILER_FAMILIES)
    raise ToolchainError(f"no C compiler found on PATH (tried {names})")


def export_toolchain(toolchain):
    """Export CC/CXX/LD for the remainder of the run."""
    os.environ.update(toolchain.as_env())


def require_tool(name, which=None):
    which = which or shutil.which
    path = which(name)
    if path is None:
        raise ToolNotFoundError(name)
    return path


def required_tools(selected):
    """Ordered, de-duplicated list of tools needed to build *selected*."""
    tools = list(_ALWAYS_REQUIRED)
    for name in selected:
        for tool in _LIBRARY_TOOLS.get(name, ()):
            if tool not in tools:
                tools.append(tool)
    return tools


def check_tools(selected, which=None):
    """Fail fast on the first missing tool, before any build starts."""
    for tool in required_tools(selected):
        require_tool(tool, which=which)
