"""Unit tests for tools/_env.py.

Tests the environment snapshot/restore that wraps every build run.
"""
from __future__ import annotations

import io
import os
import signal

import pytest

from _env import RunEnvironment, _RECIPE_PINS, recipe_env, restore_env


class TtyStream(io.StringIO):
    def isatty(self):
        return True


def test_added_variables_are_removed(saved_environ):
    os.environ.pop("BUILD_DEPS_TEST_ADDED", None)
    with RunEnvironment(stream=io.StringIO()):
        os.environ["BUILD_DEPS_TEST_ADDED"] = "1"
        os.environ["CC"] = "/opt/clang"
    assert "BUILD_DEPS_TEST_ADDED" not in os.environ
    assert os.environ.get("CC") == saved_environ.get("CC")


def test_environment_restored_exactly(saved_environ):
    os.environ["BUILD_DEPS_TEST_KEEP"] = "a b=c\tä"
    before = dict(os.environ)
    with RunEnvironment(stream=io.StringIO()):
        os.environ["BUILD_DEPS_TEST_KEEP"] = "changed"
        del os.environ["PATH"]
        os.environ.clear()
    assert dict(os.environ) == before


def test_restored_when_run_raises(saved_environ):
    before = dict(os.environ)
    with pytest.raises(RuntimeError):
        with RunEnvironment(stream=io.StringIO()):
            os.environ["LD"] = "/opt/ld"
            raise RuntimeError("boom")
    assert dict(os.environ) == before


def test_restored_on_keyboard_interrupt(saved_environ):
    before = dict(os.environ)
    with pytest.raises(KeyboardInterrupt):
        with RunEnvironment(stream=io.StringIO()):
            os.environ["CXX"] = "/opt/c++"
            raise KeyboardInterrupt
    assert dict(os.environ) == before


def test_cwd_restored(tmp_path, saved_environ):
    cwd = os.getcwd()
    with RunEnvironment(stream=io.StringIO()):
        os.chdir(tmp_path)
    assert os.getcwd() == cwd


def test_cursor_hidden_and_shown_on_tty(saved_environ):
    stream = TtyStream()
    with RunEnvironment(stream=stream):
        assert stream.getvalue() == "\033[?25l"
    assert stream.getvalue() == "\033[?25l\033[?25h"


def test_cursor_shown_after_failure(saved_environ):
    stream = TtyStream()
    with pytest.raises(SystemExit):
        with RunEnvironment(stream=stream):
            raise SystemExit(1)
    assert stream.getvalue().endswith("\033[?25h")


def test_no_escape_codes_without_tty(saved_environ):
    stream = io.StringIO()
    with RunEnvironment(stream=stream):
        pass
    assert stream.getvalue() == ""


def test_sigterm_becomes_system_exit(saved_environ):
    before = signal.getsignal(signal.SIGTERM)
    with pytest.raises(SystemExit) as exc:
        with RunEnvironment(stream=io.StringIO()):
            os.environ["CC"] = "/opt/cc"
            os.kill(os.getpid(), signal.SIGTERM)
    assert exc.value.code == 128 + signal.SIGTERM
    assert signal.getsignal(signal.SIGTERM) == before
    assert os.environ.get("CC") == saved_environ.get("CC")


def test_restore_env_replaces_everything(saved_environ):
    restore_env({"ONLY": "this"})
    assert dict(os.environ) == {"ONLY": "this"}


def test_recipe_env_pins_locale(monkeypatch):
    monkeypatch.setenv("LC_ALL", "de_DE.UTF-8")
    monkeypatch.setenv("BUILD_DEPS_TEST_VAR", "x")
    env = recipe_env()
    for key, value in _RECIPE_PINS.items():
        assert env[key] == value
    assert env["BUILD_DEPS_TEST_VAR"] == "x"
    assert os.environ["LC_ALL"] == "de_DE.UTF-8"
