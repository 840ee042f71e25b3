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
Contains tests for the modfile module.
"""

import os
import pytest

from gococo.errors import ModFileError
from gococo.modfile import (
    ModFile,
    is_directory_path,
    quote,
    rewrite_mod_file,
    rewrite_replaces,
    split_comment,
)


def rewrite(text, root="/tmp/stage"):
    """Parses text, rewrites it against root and returns the formatted file."""
    mf = ModFile.parse(text)
    updated = rewrite_replaces(mf, root)
    return updated, mf.format()


def test_split_comment():
    """Test that trailing comments are split off outside quoted strings."""
    assert split_comment("go 1.21 // version") == ("go 1.21", "// version")
    assert split_comment('replace "a//b" => ./b') == ('replace "a//b" => ./b', "")
    with pytest.raises(ModFileError):
        split_comment('replace "a => ./b')


def test_quote():
    """Test that only tokens that cannot be bare are quoted."""
    assert quote("example.com/foo") == "example.com/foo"
    assert quote("/path with space") == '"/path with space"'


def test_is_directory_path():
    """Test which replacement targets count as directories."""
    assert is_directory_path("./foo")
    assert is_directory_path("../foo")
    assert is_directory_path("/abs/foo")
    assert not is_directory_path("example.com/foo")


def test_rewrite_single_line():
    """Test that a relative local replace becomes absolute."""
    text = "module example.com/app\n\ngo 1.21\n\nreplace example.com/foo => ../foo\n"
    updated, out = rewrite(text)
    assert updated
    assert out == (
        "module example.com/app\n\ngo 1.21\n\nreplace example.com/foo => /tmp/foo\n"
    )


def test_rewrite_keeps_versioned_and_absolute():
    """Test that versioned and absolute replacements are left alone."""
    text = (
        "module example.com/app\n"
        "\n"
        "replace example.com/a v1.0.0 => example.com/b v1.2.0\n"
        "replace example.com/c => /abs/c\n"
    )
    updated, out = rewrite(text)
    assert not updated
    assert out == text


def test_rewrite_keeps_old_version_and_comment():
    """Test that the old version and comment survive the rewrite."""
    text = "module m\n\nreplace example.com/a v1.0.0 => ./a // local\n"
    updated, out = rewrite(text)
    assert updated
    assert out == "module m\n\nreplace example.com/a v1.0.0 => /tmp/stage/a // local\n"


def test_rewrite_moves_after_last_replace():
    """Test that rewritten directives follow the last remaining replace."""
    text = (
        "module m\n"
        "\n"
        "replace example.com/a => ./a\n"
        "replace example.com/b => example.com/b v1.2.0\n"
        "\n"
        "require example.com/x v1.0.0\n"
    )
    updated, out = rewrite(text)
    assert updated
    assert out == (
        "module m\n"
        "\n"
        "replace example.com/b => example.com/b v1.2.0\n"
        "replace example.com/a => /tmp/stage/a\n"
        "\n"
        "require example.com/x v1.0.0\n"
    )


def test_rewrite_block():
    """Test that replacements inside a block stay inside the block."""
    text = (
        "module m\n"
        "\n"
        "replace (\n"
        "\texample.com/a => ../a\n"
        "\texample.com/b v1.0.0 => example.com/c v1.2.0\n"
        ")\n"
    )
    updated, out = rewrite(text)
    assert updated
    assert out == (
        "module m\n"
        "\n"
        "replace (\n"
        "\texample.com/b v1.0.0 => example.com/c v1.2.0\n"
        "\texample.com/a => /tmp/a\n"
        ")\n"
    )


def test_rewrite_path_with_space():
    """Test that rewritten paths containing spaces are quoted."""
    updated, out = rewrite("module m\n\nreplace x.com/a => ./a\n", "/tmp/my stage")
    assert updated
    assert out == 'module m\n\nreplace x.com/a => "/tmp/my stage/a"\n'


def test_format_cleanup():
    """Test that formatting collapses blank lines and strips whitespace."""
    text = "module m   \n\n\n\ngo 1.21\n\n\nreplace x.com/a => ./a\n\n\n"
    updated, out = rewrite(text)
    assert updated
    assert out == "module m\n\ngo 1.21\n\nreplace x.com/a => /tmp/stage/a\n"


def test_other_blocks_preserved():
    """Test that require blocks and comments are kept as written."""
    text = (
        "// main module\n"
        "module m\n"
        "\n"
        "require (\n"
        "\texample.com/x v1.0.0 // indirect\n"
        ")\n"
    )
    mf = ModFile.parse(text)
    assert mf.replaces == []
    assert mf.format() == text


@pytest.mark.parametrize(
    "text",
    [
        "modul m\n",
        "module m\nreplace (\n\tx.com/a => ./a\n",
        "module m\nreplace x.com/a ./a\n",
        "module m\nreplace x.com/a => x.com/b\n",
        "module m\nreplace x.com/a => ./a extra tokens\n",
        "module m\nrequire (\n\tx.com/a v1.0.0 (\n)\n",
        "module\n",
    ],
)
def test_parse_malformed(text):
    """Test that malformed files raise ModFileError."""
    with pytest.raises(ModFileError):
        ModFile.parse(text)


def test_rewrite_mod_file(tmp_path):
    """Test that the staged go.mod is rewritten relative to its directory."""
    stage = tmp_path / "stage"
    stage.mkdir()
    mod = stage / "go.mod"
    mod.write_text("module m\n\nreplace example.com/foo => ../foo\n")

    assert rewrite_mod_file(str(mod)) is True
    expected = os.path.join(str(tmp_path), "foo")
    assert mod.read_text() == f"module m\n\nreplace example.com/foo => {expected}\n"

    # already absolute, nothing left to do
    assert rewrite_mod_file(str(mod)) is False


def test_rewrite_mod_file_untouched(tmp_path):
    """Test that a file without relative replacements is not rewritten,
    even if formatting would change it."""
    mod = tmp_path / "go.mod"
    text = "module m\n\n\n\nreplace x.com/a v1.0.0 => x.com/b v1.1.0   \n"
    mod.write_text(text)
    os.utime(mod, ns=(1_000_000_000, 1_000_000_000))

    assert rewrite_mod_file(str(mod), "/tmp/stage") is False
    assert mod.read_text() == text
    assert os.stat(mod).st_mtime_ns == 1_000_000_000


def test_rewrite_mod_file_missing(tmp_path):
    """Test that a missing file raises OSError."""
    with pytest.raises(OSError):
        rewrite_mod_file(str(tmp_path / "go.mod"))


def test_rewrite_mod_file_not_utf8(tmp_path):
    """Test that a go.mod that is not valid UTF-8 raises ModFileError."""
    mod = tmp_path / "go.mod"
    mod.write_bytes(b"module m\xff\n")
    with pytest.raises(ModFileError):
        rewrite_mod_file(str(mod))
