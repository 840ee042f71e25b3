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
Contains logging functions and classes.
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Union

from gococo import config

log = logging.Logger(config.LOG_NAME)

LEVEL_NAMES = ("NOTSET", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_level(level: Union[int, str, None]) -> str:
    """Returns a valid level name for an int, numeric string or level name,
    falling back to the default level for anything else.

    :param level: log level as configured.
    :return: log level name.
    """
    if isinstance(level, str) and level.isdigit():
        level = int(level)
    if isinstance(level, int):
        name = logging.getLevelName(level)
        return name if name in LEVEL_NAMES else config.LOG_LEVEL_DEFAULT
    if isinstance(level, str) and level.upper() in LEVEL_NAMES:
        return level.upper()
    return config.LOG_LEVEL_DEFAULT


LOG_LEVEL = resolve_level(config.LOG_LEVEL)

log.setLevel(LOG_LEVEL)
log.addHandler(logging.NullHandler())


class DryRunFilter(logging.Filter):
    """Drops records written to disk while in dry run mode."""

    def __init__(self, dryrun: bool = False):
        super().__init__()
        self.dryrun = dryrun

    def filter(self, record: logging.LogRecord):
        return not self.dryrun


class UserFilter(logging.Filter):
    """Adds the username to the log record."""

    def filter(self, record: logging.LogRecord):
        try:
            record.username = os.getlogin()
        except OSError:
            import getpass

            record.username = getpass.getuser()
        return True


def _drop_handlers(kind: type) -> None:
    """Removes handlers of the given type previously added by this module."""
    log.handlers = [
        h for h in log.handlers if not (h.name == log.name and type(h) is kind)
    ]


def setup_stream_handler(level: str = LOG_LEVEL) -> logging.Handler:
    """Adds a new stderr stream handler, replacing any previous one.

    :param level: log level.
    :return: handler.
    """
    _drop_handlers(logging.StreamHandler)

    handler = logging.StreamHandler()
    handler.set_name(log.name)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    log.addHandler(handler)
    return handler


def setup_file_handler(
    logdir: str = config.LOG_DIR,
    level: str = LOG_LEVEL,
    dryrun: bool = False,
) -> logging.Handler:
    """Adds a new rotating file handler writing gococo.log under logdir.

    :param logdir: directory to store the log files.
    :param level: log level.
    :param dryrun: dry run flag.
    :return: handler.
    """
    _drop_handlers(RotatingFileHandler)

    os.makedirs(logdir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(logdir, "gococo.log"),
        maxBytes=config.LOG_MAX_BYTES,
        backupCount=config.LOG_BACKUP_COUNT,
    )
    handler.set_name(log.name)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(username)s - %(levelname)s - %(message)s")
    )
    handler.addFilter(UserFilter())
    handler.addFilter(DryRunFilter(dryrun))

    log.addHandler(handler)
    return handler


def setup_logging(verbose: bool = False, dryrun: bool = False) -> None:
    """Setup log handlers.

    :param verbose: show debug messages on the console.
    :param dryrun: dry run flag.
    """
    level = "DEBUG" if verbose else LOG_LEVEL
    if verbose:
        log.setLevel(level)

    setup_stream_handler(level)

    try:
        setup_file_handler(dryrun=dryrun)
    except OSError as err:
        log.warning("Cannot write log file: %s", err)
