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
Contains the snapshot copier, which mirrors walked entries into the cache
storage directory.
"""

import os
import shutil
import time
from typing import Sequence

from tqdm import tqdm

from gococo import util
from gococo.errors import CacheError
from gococo.logger import log
from gococo.walker import KIND_DIR, KIND_FILE, Entry


def mirror_path(base_dir: str, storage_dir: str, path: str) -> str:
    """Returns where path lands under storage_dir.

    :param base_dir: Project root the path is relative to.
    :param storage_dir: Cache storage directory.
    :param path: Walked path under base_dir.
    :raises CacheError: If path is not inside base_dir.
    :return: Mirrored destination path.
    """
    if not util.is_within(os.path.normpath(path), os.path.normpath(base_dir)):
        raise CacheError(f"the file is not in the project dir: {path}")
    rel = os.path.relpath(path, base_dir)
    return os.path.normpath(os.path.join(storage_dir, rel))


def copy_file(src: str, dst: str) -> None:
    """Copies the bytes and mode of src to dst, creating parent directories.
    src is expected to be the dereferenced file.

    :param src: Source file path.
    :param dst: Destination file path.
    """
    util.ensure_dir(os.path.dirname(dst))
    shutil.copyfile(src, dst)
    shutil.copymode(src, dst)


class SnapshotCopier(object):
    """Copies walked entries from base_dir into storage_dir."""

    def __init__(self, base_dir: str, storage_dir: str, progress: bool = True):
        """
        :param base_dir: Project root.
        :param storage_dir: Cache storage directory, expected to be empty.
        :param progress: Show a progress bar.
        """
        self.base_dir = base_dir
        self.storage_dir = storage_dir
        self.progress = progress

    def copy(self, entries: Sequence[Entry]) -> int:
        """Recreates directories and copies regular files. Errors propagate
        and leave the storage directory partially populated.

        :param entries: Entries from the tree walker.
        :return: Number of files copied.
        """
        t0 = time.time()
        copied = 0

        with tqdm(
            total=len(entries),
            desc=f"[caching {self.base_dir}]",
            unit="op",
            leave=False,
            disable=not self.progress,
        ) as pbar:
            for entry in entries:
                dst = mirror_path(self.base_dir, self.storage_dir, entry.path)
                if entry.kind == KIND_DIR:
                    util.ensure_dir(dst)
                elif entry.kind == KIND_FILE:
                    copy_file(entry.real_path, dst)
                    copied += 1
                pbar.update(1)

        log.debug("copied %d files in %.2fs", copied, time.time() - t0)
        return copied
