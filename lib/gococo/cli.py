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
Command line interface for gococo: builds go projects from an isolated,
cached copy of the project.

Usage:

    $ gococo build [GO BUILD FLAGS] [PACKAGES]
    $ gococo install [GO INSTALL FLAGS] [PACKAGES]
"""

import argparse
import sys

from gococo import config
from gococo.build import DO_BUILD, DO_INSTALL, Build
from gococo.errors import (
    BuildError,
    CacheError,
    LockError,
    ModFileError,
    PackageError,
)
from gococo.logger import log, setup_logging


def parse_args(argv=None):
    """Parse command line arguments. Everything after the command is passed
    through to the go tool."""
    from gococo import __version__

    parser = argparse.ArgumentParser(
        prog="gococo",
        description=__doc__,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=config.LOCK_TIMEOUT,
        help="seconds to wait for the project build lock (default %(default)s)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="show debug messages",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"gococo {__version__}",
    )
    parser.add_argument(
        "command",
        choices=[DO_BUILD, DO_INSTALL],
        help="go command to run in the staged project",
    )
    parser.add_argument(
        "goargs",
        nargs=argparse.REMAINDER,
        help="flags and packages passed through to the go command",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main thread."""

    args = parse_args(argv)

    # set up logging handlers
    setup_logging(verbose=args.verbose)

    try:
        b = Build(args.goargs, build_type=args.command, lock_timeout=args.timeout)
        b.build()

    except KeyboardInterrupt:
        print("Stopping build...")
        return 2

    except LockError as e:
        log.error("fail to lock the project: %s", e)
        return 1

    except (CacheError, OSError) as e:
        log.error("fail to copy the project: %s", e)
        return 1

    except (BuildError, ModFileError, PackageError) as e:
        log.error("%s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
