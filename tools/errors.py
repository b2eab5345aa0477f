"""Exception types shared by the build driver and its helpers.

Everything that is not an explicit success is fatal: the driver catches
BuildError, prints the message and exits 1.
"""


class BuildError(Exception):
    """Base class for every fatal build-driver error."""


class PreconditionError(BuildError):
    """Raised before any library is processed (tools, sources, selection)."""


class ToolchainError(PreconditionError):
    pass


class ToolNotFoundError(PreconditionError):
    def __init__(self, tool):
        super().__init__(f"{tool} could not be found, please install {tool}")
        self.tool = tool


class SourceMissingError(PreconditionError):
    def __init__(self, directory, path):
        super().__init__(
            f"failed to find {directory} source code at {path}, "
            "please run git submodule update --init --recursive")
        self.directory = directory
        self.path = path


class SelectionError(PreconditionError):
    pass


class RecipeError(Exception):
    """A command inside a recipe exited non-zero."""

    def __init__(self, cmd, returncode):
        super().__init__(f"command failed with exit code {returncode}: {cmd}")
        self.cmd = cmd
        self.returncode = returncode


class BuildFailed(BuildError):
    """A library recipe failed; the whole run stops."""

    def __init__(self, name, returncode, log_path, tail):
        super().__init__(
            f"failed to build {name} (exit code {returncode}), "
            f"see {log_path} for more details")
        self.name = name
        self.returncode = returncode
        self.log_path = log_path
        self.tail = tail
