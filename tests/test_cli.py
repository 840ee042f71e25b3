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
Contains tests for the cli module.
"""

import pytest

from gococo import cli
from gococo.errors import BuildError, LockError


@pytest.fixture
def no_log_files(mocker):
    """Keeps the tests from writing log files."""
    return mocker.patch("gococo.cli.setup_logging")


def test_parse_args_passthrough():
    """Test that everything after the command is passed through."""
    args = cli.parse_args(["-t", "5", "build", "-o", "bin/app", "-v", "./..."])
    assert args.command == "build"
    assert args.timeout == 5.0
    assert args.goargs == ["-o", "bin/app", "-v", "./..."]
    assert not args.verbose


def test_parse_args_bad_command():
    """Test that unknown commands are rejected."""
    with pytest.raises(SystemExit):
        cli.parse_args(["test"])


def test_main(mocker, no_log_files):
    """Test that main builds with the given arguments."""
    build = mocker.patch("gococo.cli.Build")

    assert cli.main(["install", "./cmd/..."]) == 0
    build.assert_called_once_with(
        ["./cmd/..."], build_type="install", lock_timeout=300.0
    )
    build.return_value.build.assert_called_once_with()


@pytest.mark.parametrize(
    "error", [LockError("locked"), BuildError("exit status 1"), OSError("disk")]
)
def test_main_errors(mocker, no_log_files, error):
    """Test that known errors become exit code 1."""
    build = mocker.patch("gococo.cli.Build")
    build.return_value.build.side_effect = error
    assert cli.main(["build"]) == 1


def test_main_interrupted(mocker, no_log_files):
    """Test that an interrupted build exits with 2."""
    build = mocker.patch("gococo.cli.Build")
    build.return_value.build.side_effect = KeyboardInterrupt
    assert cli.main(["build"]) == 2
