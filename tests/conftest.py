from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO / "tools"))

from build_deps import RunConfig  # noqa: E402
from errors import RecipeError  # noqa: E402
from libraries import LIBRARIES, Library  # noqa: E402
from toolchain import Toolchain  # noqa: E402

TOOLCHAIN = Toolchain(cc="/usr/bin/gcc", cxx="/usr/bin/g++", ld="/usr/bin/g++", family="gcc")


class RecipeCalls:
    """Records (library, should_build, should_install) for every recipe call."""

    def __init__(self):
        self.calls: list[tuple[str, bool, bool]] = []
        self.failing: set[str] = set()

    def recipe(self, name: str):
        def _recipe(ctx, should_build, should_install):
            self.calls.append((name, should_build, should_install))
            ctx.log.write(f"building {name} in {ctx.build_dir}\n")
            if name in self.failing:
                for i in range(150):
                    ctx.log.write(f"{name} log line {i}\n")
                raise RecipeError(f"make -C {name}", 2)
        return _recipe

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def recipe_calls() -> RecipeCalls:
    return RecipeCalls()


@pytest.fixture
def fake_order(recipe_calls: RecipeCalls) -> tuple[Library, ...]:
    """The real build order with every recipe replaced by a recorder."""
    return tuple(
        Library(lib.name, lib.directory, lib.check_file, recipe_calls.recipe(lib.name))
        for lib in LIBRARIES
    )


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """A source root containing every vendored library's presence-check file."""
    root = tmp_path / "src"
    for lib in LIBRARIES:
        check = root / lib.directory / lib.check_file
        check.parent.mkdir(parents=True, exist_ok=True)
        check.write_text("")
    return root


@pytest.fixture
def make_config(tmp_path: Path, source_tree: Path):
    """Factory for RunConfig rooted in tmp_path."""

    def _make(**overrides) -> RunConfig:
        values = dict(
            jobs=2,
            verbose=False,
            clean=False,
            install=False,
            prefix=str(tmp_path / "out"),
            source_root=str(source_tree),
            work_root=str(tmp_path / "build"),
            selected=tuple(lib.name for lib in LIBRARIES),
            toolchain=TOOLCHAIN,
        )
        values.update(overrides)
        return RunConfig(**values)

    return _make


@pytest.fixture
def no_toolchain_env(monkeypatch):
    for var in ("CC", "CXX", "LD"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def saved_environ():
    """Put os.environ back exactly as it was, whatever the test did."""
    saved = dict(os.environ)
    yield saved
    os.environ.clear()
    os.environ.update(saved)
