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
Contains the tree walker used to digest and copy a project.

The walker visits either a whole directory tree (recursive descent) or an
explicit list of files, e.g. the source files reported by `go list`. In both
cases symbolic links are followed to the underlying file or directory, named
pipes and other special files are skipped, and paths in the skip set are never
visited:

    project/
        |- main.go                  file, tracked
        |- lib -> ../shared/lib/    walked as project/lib/...
        |- pipe                     skipped
        `- .gococo/                 skipped (cache directory)
"""

import os
import stat
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set

from gococo import util
from gococo.errors import WalkError
from gococo.logger import log

KIND_FILE = "file"
KIND_DIR = "directory"


@dataclass(frozen=True)
class Entry:
    """A walked path.

    `path` is where the entry was found (link names preserved) and decides
    where it lands in the cache, `real_path` is where its content lives.
    """

    path: str
    real_path: str
    kind: str
    mtime_ns: int = 0


class SkipSet(object):
    """Immutable set of absolute paths excluded from walking and copying.
    A path is skipped if it equals, or is nested under, a member."""

    def __init__(self, paths: Iterable[str] = ()):
        self._paths = frozenset(os.path.normpath(os.path.abspath(p)) for p in paths)

    def __contains__(self, path: str) -> bool:
        path = os.path.normpath(path)
        return any(util.is_within(path, p) for p in self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def __repr__(self) -> str:
        return f"SkipSet({sorted(self._paths)!r})"


class RecursiveDescent(object):
    """Walks everything under root."""

    descend = True

    def __init__(self, root: str):
        self.root = root

    def candidates(self) -> List[str]:
        return [self.root]


class ExplicitList(object):
    """Walks only the listed paths, without descending into directories."""

    descend = False

    def __init__(self, files: Sequence[str]):
        # keep first occurrence order, drop duplicates
        self.files = list(dict.fromkeys(os.path.abspath(f) for f in files))

    def candidates(self) -> List[str]:
        return self.files


class TreeWalker(object):
    """Classifies and yields the entries found by an enumeration strategy."""

    def __init__(
        self,
        root: str,
        skip: Optional[SkipSet] = None,
        files: Optional[Sequence[str]] = None,
    ):
        """
        :param root: Root directory of the project.
        :param skip: Paths to skip.
        :param files: Explicit list of files to walk instead of the whole
            tree under root.
        """
        self.root = os.path.abspath(root)
        self.skip = skip if skip is not None else SkipSet()
        if files is None:
            self.strategy = RecursiveDescent(self.root)
        else:
            self.strategy = ExplicitList(files)

    def walk(self) -> Iterator[Entry]:
        """Yields entries, directories before their contents.

        :raises WalkError: On any filesystem error or symlink loop.
        """
        for path in self.strategy.candidates():
            yield from self._visit(path, path, set())

    def entries(self) -> List[Entry]:
        return list(self.walk())

    def digest(self, entries: Optional[Iterable[Entry]] = None) -> Dict[str, int]:
        """Returns the modification time of every regular file entry.

        :param entries: Entries to digest, walks the tree if not given.
        """
        if entries is None:
            entries = self.walk()
        return {e.path: e.mtime_ns for e in entries if e.kind == KIND_FILE}

    def _deref(self, path: str) -> str:
        """Returns the real location of path, following any links."""
        if not os.path.islink(path):
            return path
        log.debug("found symlink: %s, following it", path)
        target = util.resolve_link(path)
        return os.path.realpath(target)

    def _visit(self, path: str, source: str, ancestors: Set[str]) -> Iterator[Entry]:
        if path in self.skip or (source != path and source in self.skip):
            log.debug("skipping %s", path)
            return

        if "\n" in path:
            # digest records are newline separated
            raise WalkError(f"unsupported file name: {path!r}")

        try:
            real = self._deref(source)
            st = os.stat(real)
        except OSError as e:
            raise WalkError(f"cannot walk {path}: {e}") from e

        if real != source and real in self.skip:
            log.debug("skipping %s (links to %s)", path, real)
            return

        if stat.S_ISDIR(st.st_mode):
            yield Entry(path, real, KIND_DIR, st.st_mtime_ns)
            if self.strategy.descend:
                yield from self._descend(path, real, ancestors)
        elif stat.S_ISREG(st.st_mode):
            yield Entry(path, real, KIND_FILE, st.st_mtime_ns)
        else:
            kind = "named pipe" if stat.S_ISFIFO(st.st_mode) else "special file"
            log.debug("skip %s: %s", kind, path)

    def _descend(self, path: str, real: str, ancestors: Set[str]) -> Iterator[Entry]:
        real_dir = os.path.realpath(real)
        if real_dir in ancestors:
            raise WalkError(f"symlink loop: {path} points back to {real_dir}")
        try:
            names = sorted(os.listdir(real_dir))
        except OSError as e:
            raise WalkError(f"cannot read directory {path}: {e}") from e

        # children are named under path but read from the real directory
        ancestors = ancestors | {real_dir}
        for name in names:
            yield from self._visit(
                os.path.join(path, name), os.path.join(real_dir, name), ancestors
            )
