"""Run one library recipe in the background while a spinner animates.

The recipe executes on a worker thread with every command's output sent to
the library's log.  The calling thread polls the worker and drives the
spinner; when the worker exits non-zero the tail of the log is printed and
BuildFailed propagates, ending the run.  An interrupt in the calling thread
is passed on to the running command's process group before it propagates.
"""

import collections
import signal
import sys
import threading
import traceback

from tqdm import tqdm

from _env import recipe_env
from errors import BuildFailed, RecipeError
from recipes import RecipeContext

_POLL_INTERVAL = 0.75
_KILL_TIMEOUT = 10
TAIL_LINES = 100


class Spinner:
    """Single-line ``|/-\\`` indicator; inert when *enabled* is false."""

    _FRAMES = "|/-\\"

    def __init__(self, label, enabled=True, file=None):
        self.label = label
        self._frame = 0
        self._bar = tqdm(
            desc=label,
            bar_format="{desc} {elapsed}",
            file=file or sys.stdout,
            disable=not enabled,
            leave=False,
        )

    def tick(self):
        frame = self._FRAMES[self._frame % len(self._FRAMES)]
        self._bar.set_description_str(f"{self.label} [{frame}]")
        self._frame += 1

    def close(self):
        self._bar.close()


def read_tail(path, lines=TAIL_LINES):
    try:
        with open(path, errors="replace") as f:
            return list(collections.deque(f, maxlen=lines))
    except OSError:
        return []


def _run_recipe(library, ctx, should_build, should_install, result):
    try:
        library.recipe(ctx, should_build, should_install)
    except RecipeError as e:
        ctx.log.write(f"error: {e}\n")
        result.append(e.returncode)
    except Exception:
        # Anything else (missing executable, bad path) is still a failed build.
        traceback.print_exc(file=ctx.log)
        result.append(1)
    else:
        result.append(0)
    finally:
        ctx.log.flush()


def _forwarded_signal(exc):
    """The signal that interrupted the run, for passing on to the recipe."""
    if isinstance(exc, KeyboardInterrupt):
        return signal.SIGINT
    # RunEnvironment turns termination signals into SystemExit(128 + signum)
    if isinstance(exc, SystemExit) and isinstance(exc.code, int) and exc.code > 128:
        return exc.code - 128
    return signal.SIGTERM


def _stop_recipe(worker, ctx, signum):
    ctx.terminate(signum)
    if not worker.is_alive():
        return
    worker.join(_KILL_TIMEOUT)
    if worker.is_alive():
        ctx.terminate(signal.SIGKILL)
        worker.join(_KILL_TIMEOUT)


def run_library(library, plan, config, state, interactive=None):
    """Build and/or install *library* according to *plan*.

    Returns normally on success; raises BuildFailed otherwise.
    """
    if interactive is None:
        interactive = sys.stdout.isatty()

    build_dir = state.prepare()
    label = f"Building {library.name}"
    echo = spinner_echo if config.verbose else None

    with open(state.log_path, "w") as log:
        ctx = RecipeContext(
            source=library.source_path(config.source_root),
            output=config.prefix,
            jobs=config.jobs,
            build_dir=build_dir,
            log=log,
            env=recipe_env(),
            verbose=config.verbose,
            echo=echo,
        )
        result = []
        worker = threading.Thread(
            target=_run_recipe,
            args=(library, ctx, plan.do_build, plan.do_install, result),
            name=f"recipe-{library.name}",
            daemon=True,
        )
        spinner = Spinner(label, enabled=interactive)
        try:
            worker.start()
            while worker.is_alive():
                spinner.tick()
                worker.join(_POLL_INTERVAL)
        except BaseException as e:
            _stop_recipe(worker, ctx, _forwarded_signal(e))
            raise
        finally:
            spinner.close()

    returncode = result[0] if result else 1
    if returncode == 0:
        print(f"{label} [DONE]")
        return

    print(f"{label} [FAILED]")
    tail = read_tail(state.log_path)
    for line in tail:
        sys.stderr.write(line if line.endswith("\n") else line + "\n")
    raise BuildFailed(library.name, returncode, state.log_path, tail)


def spinner_echo(line):
    tqdm.write(line, file=sys.stderr)
