"""Executable lookup and in-place process replacement."""

import errno
import logging
import os
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import NoReturn, Protocol

from execreload.errors import ExecutableBusyError, ExecutableNotFoundError, ReplaceError

logger = logging.getLogger(__name__)


def look_path(name: str | Path) -> Path:
    """Resolve a command name or path to an absolute executable path.

    Names containing a path separator are checked as given, bare names are
    searched for on PATH. Symlinks are kept so that a virtualenv interpreter
    is re-executed through its own link.

    Raises:
        ExecutableNotFoundError: If nothing executable is found.
    """
    name = str(name)
    if not name:
        raise ExecutableNotFoundError(name, "empty command")

    if os.sep in name or (os.altsep and os.altsep in name):
        path = Path(name)
        if not path.is_file():
            raise ExecutableNotFoundError(name, "no such file")
        if not os.access(path, os.X_OK):
            raise ExecutableNotFoundError(name, "permission denied")
        return Path(os.path.abspath(path))

    found = shutil.which(name)
    if found is None:
        raise ExecutableNotFoundError(name)
    return Path(os.path.abspath(found))


class ProcessReplacer(Protocol):
    """Replaces the running process image; never returns on success."""

    def replace(self, path: Path, argv: Sequence[str], env: Mapping[str, str]) -> NoReturn:
        ...


class ExecReplacer:
    """Process replacer backed by os.execve."""

    def replace(self, path: Path, argv: Sequence[str], env: Mapping[str, str]) -> NoReturn:
        logger.debug(f"execve {path} {list(argv)}")
        try:
            os.execve(path, list(argv), dict(env))
        except OSError as e:
            if e.errno == errno.ETXTBSY:
                raise ExecutableBusyError(path, e) from e
            raise ReplaceError(path, e) from e
