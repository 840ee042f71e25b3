#!/usr/bin/env python
#
# Copyright (c) 2024-2025, Ryan Galloway (ryan@rsgalloway.com)
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
#  - Redistributions of source code must retain the above copyright notice,
#    this list of conditions and the following disclaimer.
#
#  - Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
#  - Neither the name of the software nor the names of its contributors
#    may be used to endorse or promote products derived from this software
#    without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE
# ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE
# LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR
# CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF
# SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS
# INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN
# CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
# ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.
#

__doc__ = """
Contains utility functions for paths, links and files.
"""

import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Union

from gococo import config
from gococo.logger import log

PathLike = Union[str, os.PathLike]


class SymlinkLoopError(OSError):
    """Raised when a chain of symbolic links does not end in a real path."""

    pass


def ensure_dir(p: PathLike) -> None:
    """Ensure that directory p exists.

    :param p: Directory path to ensure.
    """
    os.makedirs(p, exist_ok=True)


def atomic_replace(src_tmp: PathLike, dst: PathLike) -> None:
    """Atomically replace dst with src_tmp.

    :param src_tmp: Temporary source file path.
    :param dst: Destination file path.
    """
    os.replace(src_tmp, dst)


def atomic_write(
    path: PathLike, data: str, encoding: str = "utf-8", errors: str = "strict"
) -> None:
    """Writes data to path by way of a temporary file in the same directory,
    so readers see either the old or the new contents, never a partial file.

    :param path: Destination file path.
    :param data: Text to write.
    :param encoding: Text encoding.
    :param errors: Encoding error handler.
    """
    path = Path(path)
    ensure_dir(path.parent)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding=encoding,
        errors=errors,
        delete=False,
        dir=str(path.parent),
        suffix=".tmp",
    ) as tf:
        tmp_path = Path(tf.name)
        tf.write(data)
    try:
        atomic_replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def resolve_link(path: str, max_depth: int = config.MAX_SYMLINK_DEPTH) -> str:
    """Follows a symbolic link, and any links it points to, until a path that
    is not a link is reached. Relative link targets are taken relative to the
    directory holding the link and are not normalized, so a `..` after a
    linked directory is left for the kernel to resolve. The final path is not
    required to exist.

    :param path: Path that may be a symbolic link.
    :param max_depth: Max number of links to follow.
    :raises SymlinkLoopError: If the chain is longer than max_depth.
    :return: The dereferenced path.
    """
    current = path
    for _ in range(max_depth):
        if not os.path.islink(current):
            return current
        # absolute targets replace the joined prefix
        current = os.path.join(os.path.dirname(current), os.readlink(current))
    if os.path.islink(current):
        raise SymlinkLoopError(f"Too many levels of symbolic links: {path}")
    return current


def get_path_type(path: str) -> str:
    """Returns the short name of the path type: 'link', 'directory', 'file',
    'pipe', 'special' or 'null' if path does not exist. Links are not followed.

    :param path: file system path.
    :return: name of path type as a string.
    """
    try:
        mode = os.lstat(path).st_mode
    except FileNotFoundError:
        return "null"
    if stat.S_ISLNK(mode):
        return "link"
    elif stat.S_ISDIR(mode):
        return "directory"
    elif stat.S_ISREG(mode):
        return "file"
    elif stat.S_ISFIFO(mode):
        return "pipe"
    return "special"


def is_within(path: str, root: str) -> bool:
    """Returns True if path is root or is nested under root. Both paths are
    expected to be absolute and normalized.

    :param path: file system path.
    :param root: candidate parent directory.
    """
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def is_dangerous_root(p: PathLike) -> bool:
    """Best-effort guard against nuking the wrong directory."""
    rp = Path(os.path.abspath(p))

    # refuse filesystem roots and the home directory
    if rp == Path(rp.anchor) or rp == Path.home():
        return True

    # refuse very short paths like "/mnt" or "C:\"
    return len(rp.parts) <= 2


def remove_tree(path: PathLike) -> None:
    """Deletes a directory tree if it exists. Errors propagate.

    :param path: directory to delete.
    """
    if os.path.lexists(path):
        log.debug("removing %s", path)
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)
