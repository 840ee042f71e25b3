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
Contains functions for reading package information from the go tool.
"""

import json
import os
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from gococo import config
from gococo.errors import PackageError
from gococo.logger import log

# categorized file lists reported by `go list -json`, relative to Package.Dir
SOURCE_FILE_FIELDS = (
    "GoFiles",
    "CgoFiles",
    "CompiledGoFiles",
    "IgnoredGoFiles",
    "CFiles",
    "IgnoredOtherFiles",
    "CXXFiles",
    "MFiles",
    "HFiles",
    "FFiles",
    "SFiles",
    "SwigFiles",
    "SwigCXXFiles",
    "SysoFiles",
    "EmbedFiles",
)


@dataclass
class Module:
    path: str
    dir: str
    go_mod: str

    @classmethod
    def from_json(cls, data: dict) -> "Module":
        return cls(
            path=data.get("Path", ""),
            dir=data.get("Dir", ""),
            go_mod=data.get("GoMod", ""),
        )


@dataclass
class Package:
    """Subset of the package information printed by `go list -json`."""

    dir: str
    import_path: str
    module: Optional[Module] = None
    files: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: dict) -> "Package":
        """Creates a Package from one decoded `go list -json` object.

        :raises PackageError: If go reported an error for the package.
        """
        import_path = data.get("ImportPath", "")
        error = data.get("Error")
        if error:
            message = error.get("Err", error) if isinstance(error, dict) else error
            raise PackageError(
                f"list package {import_path} failed with error: {message}"
            )

        module = data.get("Module")
        return cls(
            dir=data.get("Dir", ""),
            import_path=import_path,
            module=Module.from_json(module) if module else None,
            files={k: list(data.get(k) or []) for k in SOURCE_FILE_FIELDS},
        )

    def source_files(self) -> List[str]:
        """Returns the absolute paths of all files belonging to the package."""
        out = []
        for key in SOURCE_FILE_FIELDS:
            out += [os.path.join(self.dir, f) for f in self.files.get(key, [])]
        return out


def decode_packages(output: str) -> Dict[str, Package]:
    """Decodes the stream of JSON objects printed by `go list -json`.

    :param output: go list output.
    :raises PackageError: On invalid JSON or package errors.
    :return: Packages keyed by import path.
    """
    decoder = json.JSONDecoder()
    pkgs: Dict[str, Package] = {}
    pos = 0
    output = output.strip()
    while pos < len(output):
        try:
            data, end = decoder.raw_decode(output, pos)
        except json.JSONDecodeError as e:
            raise PackageError(f"reading go list output error: {e}")
        pkg = Package.from_json(data)
        pkgs[pkg.import_path] = pkg
        pos = end
        while pos < len(output) and output[pos].isspace():
            pos += 1
    return pkgs


def list_packages(
    directory: str,
    tags: Optional[str] = None,
    runner: Callable = subprocess.run,
) -> Dict[str, Package]:
    """Lists all packages under directory with `go list -json ./...`.

    :param directory: Directory to run go list in.
    :param tags: Optional build tags.
    :param runner: Function used to run the command.
    :raises PackageError: If go list fails or the project is not a module.
    :return: Packages keyed by import path.
    """
    cmd = [config.GO_BIN, "list", "-json"]
    if tags:
        cmd += ["-tags", tags]
    cmd.append("./...")

    log.debug("running %s in %s", " ".join(cmd), directory)
    try:
        result = runner(cmd, cwd=directory, capture_output=True, text=True)
    except OSError as e:
        raise PackageError(f"cannot run {config.GO_BIN}: {e}")
    if result.returncode != 0:
        raise PackageError(
            f"execute go list -json ./... failed, stdout: {result.stdout}, "
            f"stderr: {result.stderr}"
        )

    pkgs = decode_packages(result.stdout)
    for pkg in pkgs.values():
        if pkg.module is None:
            raise PackageError(
                "go module is disabled, only go mod projects are supported"
            )
    return pkgs


def project_module(pkgs: Dict[str, Package]) -> Module:
    """Returns the module of the first listed package.

    :raises PackageError: If there are no packages.
    """
    for pkg in pkgs.values():
        if pkg.module is not None:
            return pkg.module
    raise PackageError("no packages found")


def tracked_files(pkgs: Iterable[Package]) -> List[str]:
    """Returns every source file of the packages, plus the go.mod of their
    module and its go.sum if present, sorted and without duplicates.

    :param pkgs: Packages from list_packages.
    """
    files = set()
    for pkg in pkgs:
        files.update(pkg.source_files())
        if pkg.module is not None and pkg.module.go_mod:
            files.add(pkg.module.go_mod)
            go_sum = os.path.join(os.path.dirname(pkg.module.go_mod), config.GO_SUM)
            if os.path.exists(go_sum):
                files.add(go_sum)
    return sorted(files)


def is_vendored(project_dir: str, mod_flag: Optional[str] = None) -> bool:
    """Returns True if the project builds with -mod=vendor, either set
    explicitly or implied by a vendor directory.

    :param project_dir: Module root.
    :param mod_flag: Value of the -mod build flag, if given.
    """
    if mod_flag:
        return mod_flag == "vendor"
    return os.path.isdir(os.path.join(project_dir, config.VENDOR_DIR))
