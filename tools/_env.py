"""Process environment lifecycle for a build run.

The driver exports CC/CXX/LD and recipes may add more; none of that may
leak past the run.  RunEnvironment snapshots os.environ (and the working
directory) on entry and puts both back on every exit path, together with
the terminal cursor it hides while the spinner is drawn.
"""

import os
import signal
import sys
import threading

_HIDE_CURSOR = "\033[?25l"
_SHOW_CURSOR = "\033[?25h"

# Termination signals turned into SystemExit so cleanup still runs.
_EXIT_SIGNALS = (signal.SIGTERM, signal.SIGHUP)

# Vars pinned for every recipe so tool output in the logs is stable.
_RECIPE_PINS = {
    "LC_ALL": "C",
    "LANG": "C",
}


def recipe_env():
    """Return the env dict recipes run with: the current env plus pins."""
    env = dict(os.environ)
    env.update(_RECIPE_PINS)
    return env


def restore_env(snapshot):
    """Replace os.environ in-place with *snapshot*.

    Every variable present now is dropped, then exactly the snapshot's
    variables are put back.
    """
    os.environ.clear()
    os.environ.update(snapshot)


def _raise_exit(signum, _frame):
    raise SystemExit(128 + signum)


class RunEnvironment:
    """Context manager wrapping a whole run."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self.snapshot = None
        self.cwd = None
        self._cursor_hidden = False
        self._old_handlers = {}

    def __enter__(self):
        self.snapshot = dict(os.environ)
        self.cwd = os.getcwd()
        if self.stream.isatty():
            self.stream.write(_HIDE_CURSOR)
            self.stream.flush()
            self._cursor_hidden = True
        # signal.signal only works from the main thread
        if threading.current_thread() is threading.main_thread():
            for sig in _EXIT_SIGNALS:
                self._old_handlers[sig] = signal.signal(sig, _raise_exit)
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if self._cursor_hidden:
                self.stream.write(_SHOW_CURSOR)
                self.stream.flush()
                self._cursor_hidden = False
        finally:
            for sig, handler in self._old_handlers.items():
                signal.signal(sig, handler)
            self._old_handlers = {}
            os.chdir(self.cwd)
            restore_env(self.snapshot)
        return False
