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
Contains a minimal go.mod parser used to rewrite replace directives in the
staged copy of a project.

Local replacements are written relative to the project, e.g.

    replace github.com/foo/bar => ../bar

which no longer resolves once the project is copied into the cache, so the
staged go.mod is rewritten to

    replace github.com/foo/bar => /path/to/bar

Replacements with a version, or with an absolute path, are left alone.
"""

import os
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from gococo import util
from gococo.errors import ModFileError
from gococo.logger import log

# directives accepted in a go.mod file
KNOWN_VERBS = {
    "module",
    "go",
    "toolchain",
    "godebug",
    "require",
    "exclude",
    "replace",
    "retract",
    "tool",
    "ignore",
}

REPLACE_USAGE = (
    "usage: replace module/path [v1.2.3] => other/module v1.4\n"
    "\t or replace module/path [v1.2.3] => ../local/directory"
)

TOKEN_RE = re.compile(r'"(?:[^"\\]|\\.)*"|`[^`]*`|=>|[()]|[^\s()"`]+')


@dataclass
class Line:
    """A line kept as written: blank, comment, or a directive other than
    replace."""

    text: str


@dataclass
class Replace:
    """A replace directive: old_path [old_version] => new_path [new_version]."""

    old_path: str
    old_version: str
    new_path: str
    new_version: str
    comment: str = ""
    removed: bool = False

    def is_local(self) -> bool:
        """True if the replacement is a directory rather than a module."""
        return self.new_version == ""

    def format(self) -> str:
        tokens = [quote(self.old_path)]
        if self.old_version:
            tokens.append(quote(self.old_version))
        tokens += ["=>", quote(self.new_path)]
        if self.new_version:
            tokens.append(quote(self.new_version))
        text = " ".join(tokens)
        return f"{text} {self.comment}" if self.comment else text


@dataclass
class Block:
    """A parenthesized group of directives sharing one verb."""

    verb: str
    header: str = ""
    items: List[Union[Line, Replace]] = field(default_factory=list)


Item = Union[Line, Replace, Block]


def quote(token: str) -> str:
    """Quotes token if it cannot be written bare."""
    if token and not re.search(r'[\s"`()]|//', token) and token != "=>":
        return token
    return '"' + token.replace("\\", "\\\\").replace('"', '\\"') + '"'


def unquote(token: str) -> str:
    if token.startswith("`"):
        return token[1:-1]
    if token.startswith('"'):
        return re.sub(r"\\(.)", r"\1", token[1:-1])
    return token


def split_comment(text: str) -> Tuple[str, str]:
    """Splits a line into code and a trailing // comment, ignoring // inside
    quoted strings."""
    i = 0
    quote_char = None
    while i < len(text):
        c = text[i]
        if quote_char:
            if c == "\\" and quote_char == '"':
                i += 1
            elif c == quote_char:
                quote_char = None
        elif c in "\"`":
            quote_char = c
        elif text.startswith("//", i):
            return text[:i].rstrip(), text[i:].rstrip()
        i += 1
    if quote_char:
        raise ModFileError(f"unterminated quoted string: {text.strip()}")
    return text.rstrip(), ""


def tokenize(code: str) -> List[str]:
    return TOKEN_RE.findall(code)


def is_directory_path(path: str) -> bool:
    """True for rooted paths and paths starting with ./ or ../"""
    return (
        os.path.isabs(path)
        or path in (".", "..")
        or path.startswith(("./", "../", ".\\", "..\\"))
    )


def parse_replace(args: List[str], comment: str, where: str) -> Replace:
    """Parses the arguments of a replace directive.

    :param args: Tokens after the verb.
    :param comment: Trailing comment, kept when formatting.
    :param where: Location used in error messages.
    :raises ModFileError: If the directive is malformed.
    """
    if "=>" not in args:
        raise ModFileError(f"{where}: {REPLACE_USAGE}")
    arrow = args.index("=>")
    old, new = args[:arrow], args[arrow + 1 :]
    if len(old) not in (1, 2) or len(new) not in (1, 2):
        raise ModFileError(f"{where}: {REPLACE_USAGE}")

    old = [unquote(t) for t in old]
    new = [unquote(t) for t in new]
    replace = Replace(
        old_path=old[0],
        old_version=old[1] if len(old) == 2 else "",
        new_path=new[0],
        new_version=new[1] if len(new) == 2 else "",
        comment=comment,
    )
    if replace.is_local() and not is_directory_path(replace.new_path):
        raise ModFileError(
            f"{where}: replacement module without version must be directory "
            f"path (rooted or starting with ./ or ../)"
        )
    return replace


class ModFile(object):
    """Parsed go.mod file."""

    def __init__(self, name: str = "go.mod"):
        self.name = name
        self.items: List[Item] = []

    @classmethod
    def parse(cls, text: str, name: str = "go.mod") -> "ModFile":
        """Parses go.mod contents.

        :param text: File contents.
        :param name: File name used in error messages.
        :raises ModFileError: On unknown directives, unbalanced parentheses
            or malformed replace directives.
        """
        mf = cls(name)
        block: Optional[Block] = None

        for lineno, raw in enumerate(text.splitlines(), start=1):
            where = f"{name}:{lineno}"
            code, comment = split_comment(raw)
            tokens = tokenize(code)

            if block is not None:
                if tokens == [")"]:
                    mf.items.append(block)
                    block = None
                elif "(" in tokens or ")" in tokens:
                    raise ModFileError(f"{where}: unexpected parenthesis")
                elif tokens and block.verb == "replace":
                    block.items.append(parse_replace(tokens, comment, where))
                else:
                    block.items.append(Line(raw.strip()))
                continue

            if not tokens:
                mf.items.append(Line(raw.strip()))
                continue

            verb, args = tokens[0], tokens[1:]
            if verb not in KNOWN_VERBS:
                raise ModFileError(f"{where}: unknown directive: {verb}")

            if args == ["("]:
                block = Block(verb, header=comment)
            elif args == ["(", ")"]:
                mf.items.append(Block(verb, header=comment))
            elif "(" in args or ")" in args:
                raise ModFileError(f"{where}: unexpected parenthesis")
            elif not args:
                raise ModFileError(f"{where}: {verb} directive requires arguments")
            elif verb == "replace":
                mf.items.append(parse_replace(args, comment, where))
            else:
                mf.items.append(Line(raw.strip()))

        if block is not None:
            raise ModFileError(f"{name}: unterminated {block.verb} block")

        return mf

    @property
    def replaces(self) -> List[Replace]:
        """All replace directives that have not been dropped."""
        found = []
        for item in self.items:
            if isinstance(item, Replace) and not item.removed:
                found.append(item)
            elif isinstance(item, Block):
                found += [
                    r for r in item.items if isinstance(r, Replace) and not r.removed
                ]
        return found

    def drop_replace(self, replace: Replace) -> None:
        replace.removed = True

    def add_replace(self, replace: Replace) -> None:
        """Adds replace after the last replace statement, inside its block
        if that statement is a block, otherwise at the end of the file."""
        for i in range(len(self.items) - 1, -1, -1):
            item = self.items[i]
            if isinstance(item, Block) and item.verb == "replace":
                item.items.append(replace)
                return
            if isinstance(item, Replace) and not item.removed:
                self.items.insert(i + 1, replace)
                return
        self.items.append(replace)

    def cleanup(self) -> None:
        """Removes dropped directives and blocks left without directives."""
        items: List[Item] = []
        for item in self.items:
            if isinstance(item, Replace) and item.removed:
                continue
            if isinstance(item, Block):
                item.items = [
                    i for i in item.items if not (isinstance(i, Replace) and i.removed)
                ]
                if not any(
                    isinstance(i, Replace) or (isinstance(i, Line) and i.text)
                    for i in item.items
                ):
                    continue
            items.append(item)
        self.items = items

    def format(self) -> str:
        """Formats the file: block entries indented with a tab, trailing
        whitespace removed and runs of blank lines collapsed."""
        lines: List[str] = []
        for item in self.items:
            if isinstance(item, Line):
                lines.append(item.text)
            elif isinstance(item, Replace):
                lines.append(f"replace {item.format()}")
            else:
                header = f"{item.verb} ("
                if item.header:
                    header += f" {item.header}"
                lines.append(header)
                for entry in item.items:
                    text = entry.text if isinstance(entry, Line) else entry.format()
                    lines.append(f"\t{text}" if text else "")
                lines.append(")")

        out: List[str] = []
        for line in lines:
            line = line.rstrip()
            if not line and (not out or not out[-1]):
                continue
            out.append(line)
        while out and not out[-1]:
            out.pop()
        return "\n".join(out) + "\n" if out else ""


def rewrite_replaces(mf: ModFile, root: str) -> bool:
    """Rewrites local replacements with a relative path to absolute paths
    rooted at root, then cleans up the file.

    :param mf: Parsed go.mod.
    :param root: Directory the relative paths are resolved against.
    :return: True if any directive was rewritten.
    """
    updated = False
    for replace in list(mf.replaces):
        if not replace.is_local() or os.path.isabs(replace.new_path):
            continue
        new_path = os.path.abspath(os.path.join(root, replace.new_path))
        log.debug("rewriting replace %s => %s", replace.new_path, new_path)
        mf.drop_replace(replace)
        mf.add_replace(
            Replace(
                old_path=replace.old_path,
                old_version=replace.old_version,
                new_path=new_path,
                new_version="",
                comment=replace.comment,
            )
        )
        updated = True

    mf.cleanup()
    return updated


def rewrite_mod_file(mod_file: str, root: Optional[str] = None) -> bool:
    """Rewrites relative local replace directives in a staged go.mod file in
    place. The file is only written if something was rewritten.

    :param mod_file: Path to the staged go.mod.
    :param root: Root the relative paths are resolved against,
        defaults to the directory holding mod_file.
    :raises ModFileError: If the file is malformed or not UTF-8.
    :raises OSError: If the file cannot be read or written.
    :return: True if the file was rewritten.
    """
    if root is None:
        root = os.path.dirname(os.path.abspath(mod_file))

    try:
        with open(mod_file, "r", encoding="utf-8") as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise ModFileError(f"{mod_file}: invalid UTF-8: {e}") from e
    mf = ModFile.parse(text, name=mod_file)

    if not rewrite_replaces(mf, root):
        return False

    log.info("go.mod needs rewrite")
    util.atomic_write(mod_file, mf.format())
    return True
