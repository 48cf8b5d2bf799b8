"""
Error types raised by the import, edit and export pipelines.
"""


class TaskpipeError(Exception):
    """Base class for all pipeline errors."""


class MalformedInput(TaskpipeError):
    """Input bytes or edited text could not be decoded into a task."""


class UnsupportedFormat(TaskpipeError):
    """No source adapter is registered for a file extension."""

    def __init__(self, extension: str):
        self.extension = extension
        super().__init__(f"File type {extension} is not supported")


class IsADirectoryFailure(TaskpipeError):
    """A directory was given where a single file was expected."""

    def __init__(self, path):
        self.path = path
        super().__init__(f'ERROR: "{path}" is a directory. Use `importdir` instead.')


class IOFailure(TaskpipeError):
    """Any other I/O failure. The message is the underlying error verbatim."""


class StorageError(TaskpipeError):
    """Raised by a Storage Layer implementation when a write or read fails."""


class TaskNotFound(TaskpipeError):
    """No stored task matches an id or id fragment."""

    def __init__(self, id_substring: str):
        self.id_substring = id_substring
        super().__init__(f'Task "{id_substring}" does not exist')
