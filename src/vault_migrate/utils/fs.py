"""Filesystem helpers for the migration working folder."""

import os
import shutil
import sys
import time
from pathlib import Path
from typing import Iterable

from loguru import logger

log = logger.bind(component='fs')


def is_control_entry(name: str, preserved: Iterable[str] = ()) -> bool:
    """Tell whether a top-level working folder entry must survive a wipe.

    Anything git owns (``.git``, ``.gitignore``, ``.gitattributes``...) and the
    explicitly preserved names are kept.
    """
    if name.lower().startswith('.git'):
        return True
    return name.lower() in {p.lower() for p in preserved}


def remove_path(path: Path, attempts: int = 3, delay: float = 0.5) -> bool:
    """Remove a file or a directory tree, retrying while it is still busy.

    Args:
        path: File or directory to remove
        attempts: How many times to try before giving up
        delay: Seconds to wait between attempts

    Returns:
        True if the path no longer exists
    """
    for attempt in range(1, attempts + 1):
        try:
            if path.is_dir() and not path.is_symlink():
                _rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
        except OSError as e:
            log.debug(f'Attempt {attempt}/{attempts} to remove {path} failed: {e}')
        if not path.exists() and not path.is_symlink():
            return True
        if attempt < attempts:
            time.sleep(delay)

    log.warning(f'Could not remove {path} after {attempts} attempts')
    return False


def clear_working_folder(
    folder: Path,
    preserved: Iterable[str] = (),
    attempts: int = 3,
    delay: float = 0.5,
) -> bool:
    """Delete everything in the working folder except control metadata.

    Args:
        folder: Working folder root
        preserved: Extra top-level names to keep
        attempts: Removal attempts per entry
        delay: Seconds between attempts

    Returns:
        True if every removable entry is gone
    """
    if not folder.exists():
        folder.mkdir(parents=True, exist_ok=True)
        return True

    preserved = list(preserved)
    success = True
    for entry in folder.iterdir():
        if is_control_entry(entry.name, preserved):
            continue
        if not remove_path(entry, attempts=attempts, delay=delay):
            success = False
    return success


def copy_tree(source: Path, destination: Path) -> None:
    """Copy a directory tree, overwriting files that already exist."""
    shutil.copytree(source, destination, dirs_exist_ok=True)


def move_path(source: Path, destination: Path) -> None:
    """Move a file or directory, replacing whatever is at the destination."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    if destination.exists() and source.resolve() != destination.resolve():
        remove_path(destination)
    shutil.move(str(source), str(destination))


def _rmtree(path: Path) -> None:
    # onerror is deprecated from 3.12 on
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable_and_retry)
    else:
        shutil.rmtree(path, onerror=_make_writable_and_retry)


def _make_writable_and_retry(func, path, exc):
    # Fetched files can come out read-only
    os.chmod(path, 0o700)
    func(path)
