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
Contains tests for the packages module.
"""

import json
import os
from types import SimpleNamespace

import pytest

from gococo import packages
from gococo.errors import PackageError


def package_json(directory, import_path, module_dir, **files):
    data = {
        "Dir": directory,
        "ImportPath": import_path,
        "Module": {
            "Path": "example.com/app",
            "Dir": module_dir,
            "GoMod": os.path.join(module_dir, "go.mod"),
        },
    }
    data.update(files)
    return json.dumps(data, indent="\t")


def fake_runner(stdout="", returncode=0, stderr=""):
    """Returns a runner that records its calls and returns a fixed result."""
    calls = []

    def run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)

    run.calls = calls
    return run


def test_decode_packages():
    """Test that a stream of JSON objects is decoded into packages."""
    output = "\n".join(
        [
            package_json("/p", "example.com/app", "/p", GoFiles=["main.go"]),
            package_json("/p/pkg", "example.com/app/pkg", "/p", GoFiles=["a.go"]),
        ]
    )
    pkgs = packages.decode_packages(output)

    assert list(pkgs) == ["example.com/app", "example.com/app/pkg"]
    pkg = pkgs["example.com/app/pkg"]
    assert pkg.module.dir == "/p"
    assert pkg.source_files() == ["/p/pkg/a.go"]


def test_decode_packages_empty():
    """Test that empty output decodes to no packages."""
    assert packages.decode_packages("  \n") == {}


def test_decode_packages_invalid():
    """Test that invalid JSON raises PackageError."""
    with pytest.raises(PackageError):
        packages.decode_packages('{"Dir": "/p"} {broken')


def test_decode_packages_error():
    """Test that a package reported with an error raises PackageError."""
    output = json.dumps({"ImportPath": "bad", "Error": {"Err": "no Go files"}})
    with pytest.raises(PackageError, match="no Go files"):
        packages.decode_packages(output)


def test_source_files_all_fields():
    """Test that every categorized file list is included."""
    pkg = packages.Package.from_json(
        {
            "Dir": "/p",
            "ImportPath": "example.com/app",
            "GoFiles": ["main.go"],
            "CgoFiles": ["cgo.go"],
            "HFiles": ["x.h"],
            "EmbedFiles": ["static/index.html"],
            "TestGoFiles": ["main_test.go"],
        }
    )
    assert sorted(pkg.source_files()) == [
        "/p/cgo.go",
        "/p/main.go",
        "/p/static/index.html",
        "/p/x.h",
    ]
    assert pkg.module is None


def test_list_packages():
    """Test that go list is run in the given directory with the tags."""
    run = fake_runner(package_json("/p", "example.com/app", "/p"))
    pkgs = packages.list_packages("/p", tags="integration", runner=run)

    assert list(pkgs) == ["example.com/app"]
    cmd, kwargs = run.calls[0]
    assert cmd[1:] == ["list", "-json", "-tags", "integration", "./..."]
    assert kwargs["cwd"] == "/p"


def test_list_packages_fails():
    """Test that a failing go list raises PackageError with its output."""
    run = fake_runner(returncode=1, stderr="go: cannot find main module")
    with pytest.raises(PackageError, match="cannot find main module"):
        packages.list_packages("/p", runner=run)


def test_list_packages_go_missing():
    """Test that a missing go binary raises PackageError."""

    def run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    with pytest.raises(PackageError):
        packages.list_packages("/p", runner=run)


def test_list_packages_without_module():
    """Test that GOPATH mode packages are refused."""
    run = fake_runner(json.dumps({"Dir": "/p", "ImportPath": "app"}))
    with pytest.raises(PackageError, match="go module is disabled"):
        packages.list_packages("/p", runner=run)


def test_project_module():
    """Test that the module of the listed packages is returned."""
    pkgs = packages.decode_packages(package_json("/p/cmd", "example.com/app/cmd", "/p"))
    module = packages.project_module(pkgs)
    assert module.path == "example.com/app"
    assert module.dir == "/p"

    with pytest.raises(PackageError):
        packages.project_module({})


def test_tracked_files(tmp_path):
    """Test that tracked files include go.mod and go.sum, without
    duplicates."""
    root = str(tmp_path)
    (tmp_path / "go.mod").write_text("module example.com/app\n")
    (tmp_path / "go.sum").write_text("")
    pkgs = packages.decode_packages(
        "\n".join(
            [
                package_json(root, "example.com/app", root, GoFiles=["main.go"]),
                package_json(
                    os.path.join(root, "pkg"),
                    "example.com/app/pkg",
                    root,
                    GoFiles=["a.go"],
                    SFiles=["a_amd64.s"],
                ),
            ]
        )
    )
    assert packages.tracked_files(pkgs.values()) == sorted(
        [
            os.path.join(root, "go.mod"),
            os.path.join(root, "go.sum"),
            os.path.join(root, "main.go"),
            os.path.join(root, "pkg", "a.go"),
            os.path.join(root, "pkg", "a_amd64.s"),
        ]
    )


def test_tracked_files_without_go_sum(tmp_path):
    """Test that a missing go.sum is not tracked."""
    root = str(tmp_path)
    pkgs = packages.decode_packages(package_json(root, "example.com/app", root))
    assert packages.tracked_files(pkgs.values()) == [os.path.join(root, "go.mod")]


def test_is_vendored(tmp_path):
    """Test vendor detection from the vendor dir and the -mod flag."""
    assert not packages.is_vendored(str(tmp_path))
    assert packages.is_vendored(str(tmp_path), "vendor")

    (tmp_path / "vendor").mkdir()
    assert packages.is_vendored(str(tmp_path))
    assert not packages.is_vendored(str(tmp_path), "mod")
