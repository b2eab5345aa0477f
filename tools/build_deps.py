#!/usr/bin/env python3
"""Build the vendored media libraries into a common prefix.

Libraries are processed one at a time in a fixed order (protobuf, the
codecs, OpenCV, then FFmpeg which links against the codecs).  A library
whose build/install markers match the current toolchain and prefix is
skipped; any failure stops the run.
"""

import argparse
import multiprocessing
import os
import sys
from dataclasses import dataclass

from _env import RunEnvironment
from build_state import BuildState
from errors import BuildError, ToolchainError
from libraries import ALL, LIBRARIES, check_sources, library_names, parse_build_spec, select_libraries
from supervisor import run_library
from toolchain import Toolchain, check_tools, export_toolchain, fingerprint, resolve_toolchain


@dataclass(frozen=True)
class RunConfig:
    jobs: int
    verbose: bool
    clean: bool
    install: bool
    prefix: str
    source_root: str
    work_root: str
    selected: tuple
    toolchain: Toolchain


class _ArgumentParser(argparse.ArgumentParser):
    """argparse exits 2 on bad arguments; this tool uses 1 for every failure."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"error: {message}\n")


def _positive_int(value):
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid job count: {value!r}")
    if n < 1:
        raise argparse.ArgumentTypeError(f"job count must be positive: {n}")
    return n


def build_parser():
    names = "|".join([ALL] + library_names())
    parser = _ArgumentParser(
        description="Build the vendored media libraries into a common prefix",
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Echo recipe commands while building")
    parser.add_argument("--clean", action="store_true",
                        help="Discard build/install markers and rebuild")
    parser.add_argument("-j", "--jobs", type=_positive_int,
                        default=multiprocessing.cpu_count(),
                        help="Number of jobs to run simultaneously (default: CPU count)")
    parser.add_argument("-b", "--build", default=ALL, metavar="SPEC",
                        help=f"[{names}] libraries to build, space or comma "
                             "separated (default: all)")
    parser.add_argument("--prefix", default=None,
                        help="Install prefix (default: <source-dir>/out)")
    parser.add_argument("--install", action="store_true",
                        help="Also run each library's install phase. FFmpeg finds "
                             "the codecs through the prefix, so building it without "
                             "--install fails unless they were installed earlier")
    parser.add_argument("--source-dir", default=None,
                        help="Directory holding the vendored sources (default: cwd)")
    parser.add_argument("--build-dir", default=None,
                        help="Working directory for build trees and logs "
                             "(default: <source-dir>/build)")
    return parser


def _resolve_toolchain():
    sys.stdout.write("Checking CC ")
    sys.stdout.flush()
    try:
        toolchain = resolve_toolchain()
    except ToolchainError:
        print("[FAILED]")
        raise
    if toolchain.family == "environment":
        print("[SKIPPED]")
    else:
        export_toolchain(toolchain)
        print(f"[DONE] (found {toolchain.family})")
    return toolchain


def configure(args):
    """Resolve the command line into a RunConfig, checking preconditions."""
    source_root = os.path.abspath(args.source_dir or os.getcwd())
    work_root = os.path.abspath(args.build_dir or os.path.join(source_root, "build"))
    prefix = os.path.abspath(args.prefix or os.path.join(source_root, "out"))

    selected = select_libraries(parse_build_spec(args.build))
    toolchain = _resolve_toolchain()
    check_tools([lib.name for lib in selected])
    check_sources(selected, source_root)

    os.makedirs(prefix, exist_ok=True)
    os.makedirs(work_root, exist_ok=True)

    return RunConfig(
        jobs=args.jobs,
        verbose=args.verbose,
        clean=args.clean,
        install=args.install,
        prefix=prefix,
        source_root=source_root,
        work_root=work_root,
        selected=tuple(lib.name for lib in selected),
        toolchain=toolchain,
    )


def run(config, order=None, interactive=None):
    """Process every library in *order*, stopping at the first failure."""
    if order is None:
        order = LIBRARIES
    settings = fingerprint(config.toolchain, config.prefix)
    os.makedirs(config.prefix, exist_ok=True)

    for lib in order:
        if lib.name not in config.selected:
            print(f"Building {lib.name} [SKIPPED]")
            continue
        state = BuildState(config.work_root, lib.name)
        plan = state.plan(settings, clean=config.clean, install=config.install)
        if plan.cached:
            print(f"Building {lib.name} [CACHED]")
            continue
        run_library(lib, plan, config, state, interactive=interactive)
        state.record(plan, settings)

    print("Done!")


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        with RunEnvironment():
            run(configure(args))
    except KeyboardInterrupt:
        print("\ninterrupted", file=sys.stderr)
        return 130
    except BuildError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
