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
Contains the build lock, which makes sure only one gococo process stages a
given project at a time:

    with BuildMutex("/path/to/project/.gococo.lock", timeout=300):
        ...
"""

import os
import threading
import time
from typing import Dict, Optional

import fasteners

from gococo import config
from gococo.errors import LockError
from gococo.logger import log

# advisory file locks are per process, threads share one per lock file
_registry_lock = threading.Lock()
_thread_locks: Dict[str, threading.Lock] = {}


def thread_lock(path: str) -> threading.Lock:
    """Returns the in-process lock guarding the lock file at path."""
    key = os.path.realpath(path)
    with _registry_lock:
        return _thread_locks.setdefault(key, threading.Lock())


class BuildMutex(object):
    """Inter-process lock backed by an advisory lock on a sentinel file,
    bounded by a timeout. Mutexes on the same file also exclude each other
    within one process."""

    def __init__(
        self,
        path: str,
        timeout: float = config.LOCK_TIMEOUT,
        interval: float = config.LOCK_INTERVAL,
    ):
        """
        :param path: Path of the lock file. Its contents are irrelevant.
        :param timeout: Seconds to wait for the lock.
        :param interval: Seconds between attempts.
        """
        self.path = path
        self.timeout = timeout
        self.interval = interval
        self._lock = fasteners.InterProcessLock(path)
        self._thread_lock = thread_lock(path)
        self._acquired_at: Optional[float] = None

    @property
    def locked(self) -> bool:
        return self._acquired_at is not None

    def lock(self) -> None:
        """Waits for the lock, polling every interval seconds.

        :raises LockError: If the lock is not acquired within the timeout.
        """
        if self.locked:
            raise LockError(f"lock already held: {self.path}")

        log.debug("waiting for build lock %s", self.path)
        t0 = time.time()
        deadline = t0 + self.timeout
        if not self._thread_lock.acquire(timeout=max(0.0, self.timeout)):
            raise LockError(
                f"could not acquire {self.path} within {self.timeout:g} seconds"
            )
        try:
            acquired = self._lock.acquire(
                blocking=True,
                delay=self.interval,
                max_delay=self.interval,
                timeout=max(0.0, deadline - time.time()),
            )
        except BaseException:
            self._thread_lock.release()
            raise
        if not acquired:
            self._thread_lock.release()
            raise LockError(
                f"could not acquire {self.path} within {self.timeout:g} seconds"
            )

        self._acquired_at = time.time()
        log.debug("build lock acquired after %.2fs", self._acquired_at - t0)

    def unlock(self) -> None:
        """Releases the lock.

        :raises LockError: If the lock is not held.
        """
        if not self.locked:
            raise LockError(f"lock not held: {self.path}")
        try:
            self._lock.release()
        finally:
            self._thread_lock.release()
            held = time.time() - self._acquired_at
            log.debug("build lock released after %.2fs", held)
            self._acquired_at = None

    def __enter__(self) -> "BuildMutex":
        self.lock()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unlock()
