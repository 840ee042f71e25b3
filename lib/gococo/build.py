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
Contains the build class, which stages a go project and runs go build or
go install in the staged copy.
"""

import os
import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from gococo import config, packages
from gococo.errors import BuildError
from gococo.logger import log
from gococo.stage import StageConfig, StageResult, stage_project

DO_BUILD = "build"
DO_INSTALL = "install"

# go build flags that take a value
VALUE_FLAGS = {
    "asmflags",
    "buildmode",
    "buildvcs",
    "compiler",
    "covermode",
    "coverpkg",
    "gccgoflags",
    "gcflags",
    "installsuffix",
    "ldflags",
    "mod",
    "modfile",
    "o",
    "overlay",
    "p",
    "pgo",
    "pkgdir",
    "tags",
    "toolexec",
}


@dataclass
class GoFlags:
    """Flags and arguments to pass through to the go command."""

    flags: List[str] = field(default_factory=list)
    args: List[str] = field(default_factory=list)
    output: Optional[str] = None
    tags: Optional[str] = None
    mod: Optional[str] = None


def parse_go_flags(argv: Sequence[str], cwd: Optional[str] = None) -> GoFlags:
    """Scans go build style flags. Flags are accepted as -name, -name=value
    or -name value, with one or two dashes. Scanning stops at the first
    argument that is not a flag, or after "--".

    -o is made absolute so the output lands where the user asked for it,
    even though the build runs in the staged copy.

    :param argv: Arguments as given on the command line.
    :param cwd: Directory -o is relative to, default os.getcwd().
    :raises BuildError: If a value flag is missing its value.
    :return: GoFlags.
    """
    cwd = cwd or os.getcwd()
    result = GoFlags()
    argv = list(argv)
    i = 0

    while i < len(argv):
        arg = argv[i]
        if arg == "--":
            i += 1
            break
        if not arg.startswith("-") or arg == "-":
            break

        name, sep, value = arg.lstrip("-").partition("=")
        if name in VALUE_FLAGS and not sep:
            if i + 1 >= len(argv):
                raise BuildError(f"flag needs an argument: -{name}")
            i += 1
            value = argv[i]
            sep = "="

        if name == "o":
            value = os.path.abspath(os.path.join(cwd, value))
            result.output = value
        elif name == "tags":
            result.tags = value
        elif name == "mod":
            result.mod = value

        if sep:
            result.flags += [f"-{name}", value]
        else:
            result.flags.append(f"-{name}")
        i += 1

    result.args = argv[i:]
    return result


def nice_print_args(args: Sequence[str]) -> str:
    """Quotes arguments containing spaces, for display only."""
    return " ".join(f'"{a}"' if " " in a else a for a in args)


class Build(object):
    """Stages a go module and builds it from the staged copy."""

    def __init__(
        self,
        args: Sequence[str] = (),
        build_type: str = DO_BUILD,
        cwd: Optional[str] = None,
        runner: Callable = subprocess.run,
        lock_timeout: float = config.LOCK_TIMEOUT,
    ):
        """
        :param args: go build flags and package arguments.
        :param build_type: DO_BUILD or DO_INSTALL.
        :param cwd: Working directory, default os.getcwd().
        :param runner: Function used to run go commands.
        :param lock_timeout: Seconds to wait for the project build lock.
        """
        self.build_type = build_type
        self.cwd = os.path.abspath(cwd or os.getcwd())
        self.runner = runner
        self.lock_timeout = lock_timeout
        self.goflags = parse_go_flags(args, cwd=self.cwd)

        self.project_dir = ""
        self.import_path = ""
        self.pkgs = {}
        self.is_vendor_mod = False
        self.stage: Optional[StageResult] = None

    def read_project_meta_info(self) -> None:
        """Reads module and package information with go list.

        :raises PackageError: If go list fails.
        """
        pkgs = packages.list_packages(self.cwd, self.goflags.tags, self.runner)
        module = packages.project_module(pkgs)
        self.project_dir = module.dir
        self.import_path = module.path

        # package info is needed for the whole project, not only cwd
        if os.path.normpath(self.cwd) != os.path.normpath(self.project_dir):
            pkgs = packages.list_packages(
                self.project_dir, self.goflags.tags, self.runner
            )
        self.pkgs = pkgs

        self.is_vendor_mod = packages.is_vendored(self.project_dir, self.goflags.mod)
        log.info("project meta information parsed")
        log.debug("project directory: %s", self.project_dir)
        if self.is_vendor_mod:
            log.info("mod=vendor")

    def copy_project_to_tmp(self) -> StageResult:
        """Stages the project. Vendored projects are staged whole, since
        go list does not report the vendored sources."""
        files = None
        if not self.is_vendor_mod:
            files = packages.tracked_files(self.pkgs.values())

        self.stage = stage_project(
            StageConfig(
                project_dir=self.project_dir,
                files=files,
                lock_timeout=self.lock_timeout,
            )
        )
        log.debug("temporary project directory: %s", self.stage.cache_dir)
        return self.stage

    @property
    def staged_wd(self) -> str:
        """The staged equivalent of the working directory."""
        rel = os.path.relpath(self.cwd, self.project_dir)
        return os.path.normpath(os.path.join(self.stage.cache_dir, rel))

    def command(self) -> List[str]:
        """Returns the go command to run in the staged copy."""
        flags = list(self.goflags.flags)

        if self.stage.mod_edited and self.is_vendor_mod:
            flags += ["-mod", "readonly"]

        # binaries go to the original working directory unless -o is set
        if self.build_type == DO_BUILD and self.goflags.output is None:
            flags += ["-o", self.cwd]

        return [config.GO_BIN, self.build_type] + flags + self.goflags.args

    def build(self) -> None:
        """Stages the project and runs the go command in the staged copy.

        :raises BuildError: If the go command fails.
        """
        if not self.project_dir:
            self.read_project_meta_info()
        if self.stage is None:
            self.copy_project_to_tmp()

        cmd = self.command()
        log.info(
            "go %s cmd is: %s, in path [%s]",
            self.build_type,
            nice_print_args(cmd),
            self.staged_wd,
        )
        try:
            result = self.runner(cmd, cwd=self.staged_wd)
        except OSError as e:
            raise BuildError(f"fail to execute go {self.build_type}: {e}")
        if result.returncode != 0:
            raise BuildError(
                f"fail to execute go {self.build_type}: exit status {result.returncode}"
            )
        log.info("go %s done", self.build_type)
