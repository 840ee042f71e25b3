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
Contains the digest store: the persisted map of tracked file paths to their
last seen modification times (in nanoseconds).

The digest file holds one record per line:

    /abs/path/to/file.go 1700000000123456789
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from gococo import util
from gococo.errors import DigestError
from gococo.logger import log

# maps absolute file path -> modification time in nanoseconds
Digest = Dict[str, int]


@dataclass
class DigestDiff:
    """Symmetric difference between two digests."""

    added: Set[str] = field(default_factory=set)
    removed: Set[str] = field(default_factory=set)
    changed: Set[str] = field(default_factory=set)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.changed)

    def __len__(self) -> int:
        return len(self.added) + len(self.removed) + len(self.changed)


def diff_digests(old: Digest, new: Digest) -> DigestDiff:
    """Compares two digests. An empty result means the digests are equal.

    :param old: Previously recorded digest.
    :param new: Freshly computed digest.
    :return: DigestDiff with added, removed and changed paths.
    """
    old_keys = set(old)
    new_keys = set(new)
    return DigestDiff(
        added=new_keys - old_keys,
        removed=old_keys - new_keys,
        changed={p for p in old_keys & new_keys if old[p] != new[p]},
    )


def parse_digest(text: str, source: str = "<digest>") -> Digest:
    """Parses digest records. Blank lines are ignored, the path is everything
    before the last space on the line.

    :param text: Digest file contents.
    :param source: Name used in error messages.
    :raises DigestError: On a line without two fields or with a bad time.
    :return: Digest mapping.
    """
    digest: Digest = {}
    for lineno, line in enumerate(text.split("\n"), start=1):
        line = line.strip()
        if not line:
            continue
        fields = line.rsplit(" ", 1)
        if len(fields) != 2 or not fields[0]:
            raise DigestError(f"{source}:{lineno}: digest file bad format")
        path, mtime = fields
        try:
            digest[path] = int(mtime)
        except ValueError:
            raise DigestError(f"{source}:{lineno}: invalid modification time {mtime!r}")
    return digest


def format_digest(digest: Digest) -> str:
    """Formats a digest as sorted, newline terminated records."""
    return "".join(f"{path} {digest[path]}\n" for path in sorted(digest))


class DigestStore(object):
    """Reads and writes the digest file."""

    def __init__(self, path: str):
        self.path = path

    def exists(self) -> bool:
        return os.path.lexists(self.path)

    def load(self) -> Optional[Digest]:
        """Loads the digest file.

        :raises DigestError: If the file is malformed.
        :return: Digest, or None if there is no digest file yet.
        """
        if not self.exists():
            log.debug("no digest file at %s", self.path)
            return None
        # newline="" keeps a \r inside a path intact
        with open(
            self.path, "r", encoding="utf-8", errors="surrogateescape", newline=""
        ) as f:
            digest = parse_digest(f.read(), source=self.path)
        log.debug("loaded %d records from %s", len(digest), self.path)
        return digest

    def save(self, digest: Digest) -> None:
        """Overwrites the digest file with the given digest.

        :param digest: Digest to persist.
        """
        util.atomic_write(self.path, format_digest(digest), errors="surrogateescape")
        log.debug("saved %d records to %s", len(digest), self.path)

    def clear(self) -> None:
        """Removes the digest file, if any."""
        if self.exists():
            os.remove(self.path)
