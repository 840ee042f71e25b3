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
Contains the incremental project cache.

The cache copies a project into <base>/.gococo/cache and records the
modification time of every tracked file in <base>/.gococo/digest.modtime.
The copy is only refreshed when the recorded digest differs from the current
one.
"""

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence

from gococo import config, util
from gococo.digest import Digest, DigestDiff, DigestStore, diff_digests
from gococo.errors import CacheError, LockError
from gococo.lock import BuildMutex
from gococo.logger import log, setup_logging
from gococo.snapshot import SnapshotCopier
from gococo.walker import SkipSet, TreeWalker

# exit code when cache is stale
STALE_EXIT = 10


@dataclass(frozen=True)
class CacheLayout:
    """Absolute locations of the cache directory, digest file and storage."""

    base_dir: str
    cache_dir: str
    digest_file: str
    storage_dir: str

    @classmethod
    def from_env(
        cls, base_dir: str, env: Optional[Mapping[str, str]] = None
    ) -> "CacheLayout":
        """Derives the layout for base_dir, honoring the GOCOCO_CACHE_DIR and
        GOCOCO_CACHE_DIGEST overrides.

        :param base_dir: Project root.
        :param env: Environment to read overrides from, default os.environ.
        :raises CacheError: If base_dir is empty or the cache directory would
            not be inside base_dir.
        """
        if not base_dir:
            raise CacheError("empty base path")
        if env is None:
            env = os.environ

        base_dir = os.path.abspath(base_dir)
        cache_dir = os.path.normpath(
            os.path.join(base_dir, env.get(config.ENV_CACHE_DIR) or config.CACHE_DIR)
        )
        if cache_dir == base_dir or not util.is_within(cache_dir, base_dir):
            raise CacheError(f"cache dir must be inside {base_dir}: {cache_dir}")

        digest_name = env.get(config.ENV_CACHE_DIGEST) or config.CACHE_DIGEST
        return cls(
            base_dir=base_dir,
            cache_dir=cache_dir,
            digest_file=os.path.normpath(os.path.join(cache_dir, digest_name)),
            storage_dir=os.path.join(cache_dir, config.CACHE_STORAGE),
        )


class BuildCache(object):
    """Skips copying the project if no tracked file changed, and tells the
    caller whether the copy was refreshed."""

    def __init__(
        self,
        base_dir: str,
        skip: Iterable[str] = (),
        files: Optional[Sequence[str]] = None,
        env: Optional[Mapping[str, str]] = None,
        progress: bool = True,
    ):
        """Loads the previous digest, if any.

        :param base_dir: Project root.
        :param skip: Paths to exclude, relative paths are taken relative to
            base_dir. The cache directory is always excluded.
        :param files: Explicit list of files to track instead of walking the
            whole project, e.g. the sources reported by `go list`.
        :param env: Environment to read layout overrides from.
        :param progress: Show a progress bar while copying.
        :raises CacheError: On an invalid base path, or an explicit file
            outside base_dir.
        :raises DigestError: If the previous digest is malformed.
        """
        self.layout = CacheLayout.from_env(base_dir, env)
        self.skip = SkipSet(
            [os.path.join(self.layout.base_dir, p) for p in skip]
            + [self.layout.cache_dir]
        )
        self.files = list(files) if files is not None else None
        for f in self.files or []:
            path = os.path.normpath(os.path.abspath(f))
            if not util.is_within(path, self.layout.base_dir):
                raise CacheError(f"the file is not in the project dir: {f}")
        self.progress = progress

        self.store = DigestStore(self.layout.digest_file)
        self.old_digest: Optional[Digest] = self.store.load()
        self.new_digest: Digest = {}
        self._needs_refresh = self.old_digest is None

    @property
    def base_dir(self) -> str:
        return self.layout.base_dir

    @property
    def cache_dir(self) -> str:
        return self.layout.cache_dir

    @property
    def storage_dir(self) -> str:
        """Directory holding the copied project."""
        return self.layout.storage_dir

    def walker(self) -> TreeWalker:
        return TreeWalker(self.base_dir, self.skip, files=self.files)

    def need_refresh(self) -> bool:
        """Returns True if the last call to cache() copied the project, or
        before the first call, if there is no previous digest."""
        return self._needs_refresh

    def diff(self) -> DigestDiff:
        """Compares the previous digest with the current state of the
        project. Everything is added if there is no previous digest."""
        return diff_digests(self.old_digest or {}, self.walker().digest())

    def is_stale(self) -> bool:
        """Returns True if cache() would copy the project."""
        return self.old_digest is None or bool(self.diff())

    def cache(self, force: bool = False) -> bool:
        """Copies the project into the storage directory unless the tracked
        files are unchanged since the previous copy.

        :param force: Copy even if nothing changed.
        :raises WalkError: If the project cannot be walked.
        :raises OSError: If a file cannot be copied.
        :return: True if the project was copied.
        """
        walker = self.walker()
        entries = walker.entries()
        self.new_digest = walker.digest(entries)
        log.debug("tracking %d files under %s", len(self.new_digest), self.base_dir)

        if self.old_digest is None:
            log.debug("no previous digest, refreshing cache")
        elif force:
            log.debug("forced refresh")
        else:
            changes = diff_digests(self.old_digest, self.new_digest)
            if not changes:
                self._needs_refresh = False
                return False
            log.debug(
                "cache is stale: %d added, %d removed, %d changed",
                len(changes.added),
                len(changes.removed),
                len(changes.changed),
            )

        self._needs_refresh = True

        # a failed copy must not leave a digest matching a partial storage
        self.store.clear()
        util.remove_tree(self.storage_dir)
        util.ensure_dir(self.storage_dir)

        copier = SnapshotCopier(self.base_dir, self.storage_dir, self.progress)
        copier.copy(entries)

        self.store.save(self.new_digest)
        self.old_digest = dict(self.new_digest)
        return True


def log_diff(changes: DigestDiff) -> None:
    """Logs added (+), removed (-) and changed (~) paths."""
    for path in sorted(changes.added):
        log.info(f"+ {path}")
    for path in sorted(changes.removed):
        log.info(f"- {path}")
    for path in sorted(changes.changed):
        log.info(f"~ {path} [changed]")


def delete_cache(cache_dir: str, dryrun: bool = False) -> int:
    """Deletes the entire cache directory.

    :param cache_dir: Cache directory to delete.
    :param dryrun: If True, only log what would be deleted.
    :raises CacheError: If cache_dir looks like a directory that must not
        be deleted.
    """
    if not os.path.exists(cache_dir):
        log.info("cache does not exist")
        return 0

    if util.is_dangerous_root(cache_dir):
        raise CacheError(f"refusing to delete dangerous cache root: {cache_dir}")

    if dryrun:
        log.info(f"would delete cache: {cache_dir}")
        return 0

    util.remove_tree(cache_dir)
    log.info(f"deleted cache: {cache_dir}")
    return 0


def build_parser(prog: str = "gococo-cache") -> argparse.ArgumentParser:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Incremental project cache.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "--base",
        default=".",
        type=Path,
        help="Project directory (default is cwd)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help=f"Exit with {STALE_EXIT} if the cache is stale (no copy)",
    )
    parser.add_argument(
        "--diff",
        action="store_true",
        help="Show differences only (no copy)",
    )
    parser.add_argument(
        "--delete",
        action="store_true",
        help="Delete the cache",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Refresh the cache even if it appears fresh",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=config.LOCK_TIMEOUT,
        help="Seconds to wait for the build lock",
    )
    parser.add_argument(
        "-d",
        "--dryrun",
        action="store_true",
        help="Dry run (no changes made)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug messages",
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse arguments for the cache utility."""
    parser = build_parser()
    return parser.parse_args(list(argv) if argv is not None else None)


def run(args: argparse.Namespace) -> int:
    """Run the cache utility based on parsed arguments."""

    base = args.base.resolve()
    if not base.is_dir():
        log.error(f"project does not exist: {base}")
        return 1

    lock_file = str(base / config.LOCK_FILE)
    try:
        with BuildMutex(lock_file, timeout=args.timeout):
            bc = BuildCache(str(base), skip=[config.LOCK_FILE])

            if args.delete:
                return delete_cache(bc.cache_dir, dryrun=args.dryrun)

            if args.diff:
                log_diff(bc.diff())
                return 0

            if args.check or args.dryrun:
                stale = bc.is_stale()
                log.info("cache is stale" if stale else "cache is fresh")
                return STALE_EXIT if stale and args.check else 0

            if bc.cache(force=args.force):
                log.info(f"project copied to {bc.storage_dir}")
            else:
                log.info("project using cache, skip copying")

    except KeyboardInterrupt:
        log.error("canceled")
        return 1

    except (CacheError, LockError, OSError) as e:
        log.error(f"cache failed: {e}")
        return 1

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the cache utility."""

    args = parse_args(argv)

    setup_logging(verbose=args.verbose, dryrun=args.dryrun)

    if args.dryrun:
        log.info(config.DRYRUN_MESSAGE)

    return run(args)
