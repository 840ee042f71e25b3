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
Contains the staging pipeline: lock the project, refresh the cached copy if
needed and fix up the staged go.mod, then release the lock.
"""

import filecmp
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence

from gococo import config
from gococo.cache import BuildCache
from gococo.lock import BuildMutex
from gococo.logger import log
from gococo.modfile import rewrite_mod_file


@dataclass
class StageConfig:
    """Options for staging one project."""

    project_dir: str
    files: Optional[Sequence[str]] = None
    skip: List[str] = field(default_factory=list)
    lock_timeout: float = config.LOCK_TIMEOUT
    lock_interval: float = config.LOCK_INTERVAL
    progress: bool = True
    env: Optional[Mapping[str, str]] = None

    @property
    def lock_file(self) -> str:
        return os.path.join(self.project_dir, config.LOCK_FILE)


@dataclass
class StageResult:
    cache_dir: str
    refreshed: bool
    mod_edited: bool


def stage_project(cfg: StageConfig) -> StageResult:
    """Copies the project into its cache directory, unless the cached copy
    is current, and rewrites relative replace directives in the staged
    go.mod. Runs entirely under the project build lock.

    :param cfg: Staging options.
    :raises LockError: If the build lock cannot be acquired.
    :raises CacheError: If the project cannot be cached.
    :raises ModFileError: If the staged go.mod is malformed.
    :return: StageResult.
    """
    mutex = BuildMutex(
        cfg.lock_file, timeout=cfg.lock_timeout, interval=cfg.lock_interval
    )
    with mutex:
        bc = BuildCache(
            cfg.project_dir,
            skip=[config.LOCK_FILE] + list(cfg.skip),
            files=cfg.files,
            env=cfg.env,
            progress=cfg.progress,
        )
        refreshed = bc.cache()
        if refreshed:
            log.info("project copied to temporary directory")
        else:
            log.info("project using cache, skip copying to temporary directory")

        mod_edited = False
        staged_mod = os.path.join(bc.storage_dir, config.GO_MOD)
        if os.path.isfile(staged_mod):
            # relative targets were written relative to the original go.mod
            mod_edited = rewrite_mod_file(staged_mod, bc.base_dir)
            if not mod_edited and not refreshed:
                # rewritten when the cache was populated
                mod_edited = mod_diverges(
                    os.path.join(bc.base_dir, config.GO_MOD), staged_mod
                )

    return StageResult(bc.storage_dir, refreshed, mod_edited)


def mod_diverges(original: str, staged: str) -> bool:
    """Returns True if the staged go.mod differs from the original."""
    if not os.path.isfile(original):
        return False
    return not filecmp.cmp(original, staged, shallow=False)
