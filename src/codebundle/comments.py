"""String-literal-safe comment stripping for the supported comment grammars.

Every grammar is described by a `CommentSyntax` record; `remove_comments` is the
single entry point that interprets it. The stripper never raises: unterminated
strings or block comments leave the offending text untouched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from codebundle.languages import CommentGrammar

if TYPE_CHECKING:
    from collections.abc import Mapping

QUOTE_CHARS = frozenset({'"', "'", "`"})
GENERATED_MARKER_TEXT = "GENERATED CODE"

# Single-line string literals, used to shield block delimiters that sit inside strings.
_STRING_LITERAL = r"\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'|`(?:\\.|[^`\\\n])*`"
_TRIPLE_QUOTED = (
    re.compile(r'"""[\s\S]*?"""'),
    re.compile(r"'''[\s\S]*?'''"),
)


@dataclass(frozen=True)
class BlockDelimiters:
    """Start/end tokens of a block comment."""

    start: str
    end: str
    string_aware: bool = False

    def pattern(self, line_token: str | None) -> re.Pattern[str]:
        body = rf"{re.escape(self.start)}[\s\S]*?{re.escape(self.end)}"
        if not self.string_aware:
            return re.compile(body)
        shields = [_STRING_LITERAL]
        if line_token:
            shields.append(rf"{re.escape(line_token)}[^\n]*")
        return re.compile(rf"(?P<keep>{'|'.join(shields)})|{body}")


@dataclass(frozen=True)
class CommentSyntax:
    """Delimiter data of one comment grammar."""

    line_token: str | None
    blocks: tuple[BlockDelimiters, ...] = ()
    triple_quoted_blocks: bool = False

    @property
    def opening_tokens(self) -> tuple[str, ...]:
        tokens = [b.start for b in self.blocks]
        if self.line_token:
            tokens.insert(0, self.line_token)
        return tuple(tokens)


_C_BLOCK = BlockDelimiters("/*", "*/", string_aware=True)
_HTML_BLOCK = BlockDelimiters("<!--", "-->")

SYNTAXES: Mapping[CommentGrammar, CommentSyntax] = MappingProxyType(
    {
        CommentGrammar.C_STYLE: CommentSyntax(line_token="//", blocks=(_C_BLOCK,)),
        CommentGrammar.PYTHON_STYLE: CommentSyntax(line_token="#", triple_quoted_blocks=True),
        CommentGrammar.HASH_STYLE: CommentSyntax(line_token="#"),
        CommentGrammar.HTML_STYLE: CommentSyntax(line_token=None, blocks=(_HTML_BLOCK,)),
        # HTML first, then CSS/JS blocks, then JS line comments.
        CommentGrammar.MIXED_WEB: CommentSyntax(line_token="//", blocks=(_HTML_BLOCK, _C_BLOCK)),
    },
)


def remove_comments(content: str, grammar: CommentGrammar) -> str:
    """Remove comments from `content` according to `grammar`.

    Block comments are removed first, then line comments, then blank lines are
    collapsed. A comment token inside a string literal is never honored.

    Args:
        content (str): raw source text
        grammar (CommentGrammar): the comment grammar of the source

    Returns:
        str: the text without comments, with blank lines collapsed
    """
    syntax = SYNTAXES[grammar]
    result = content
    if syntax.triple_quoted_blocks:
        for pattern in _TRIPLE_QUOTED:
            result = pattern.sub("", result)
    for block in syntax.blocks:
        result = remove_block_comments(result, block, line_token=syntax.line_token)
    if syntax.line_token:
        result = remove_line_comments(result, syntax.line_token)
    return collapse_blank_lines(result)


def remove_block_comments(content: str, block: BlockDelimiters, *, line_token: str | None = None) -> str:
    """Peel well-formed block comments until the text stops shrinking.

    Nesting is handled approximately: each pass removes the innermost-first
    non-greedy matches, so only outermost well-formed pairs are guaranteed.
    """
    pattern = block.pattern(line_token)

    def keep_shielded(match: re.Match[str]) -> str:
        return match.group("keep") or ""

    replacement = keep_shielded if block.string_aware else ""
    result = content
    previous_length = -1
    while len(result) != previous_length:
        previous_length = len(result)
        result = pattern.sub(replacement, result)
    return result


def remove_line_comments(content: str, token: str) -> str:
    """Drop comment-only lines and strip trailing comments outside string literals."""
    kept: list[str] = []
    for line in content.split("\n"):
        if line.lstrip().startswith(token):
            continue
        kept.append(strip_inline_comment(line, token))
    return "\n".join(kept)


def strip_inline_comment(line: str, token: str) -> str:
    """Cut `line` at the first `token` that is not inside a string literal.

    Args:
        line (str): a single line of source
        token (str): the line-comment token (e.g. "//" or "#")

    Returns:
        str: the line before the comment with trailing whitespace removed, or
            the unchanged line when no comment starts outside a string
    """
    in_string = False
    quote = ""
    escaped = False
    for i, char in enumerate(line):
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if not in_string and char in QUOTE_CHARS:
            in_string = True
            quote = char
            continue
        if in_string and char == quote:
            in_string = False
            continue
        if not in_string and line.startswith(token, i):
            return line[:i].rstrip()
    return line


def collapse_blank_lines(content: str) -> str:
    """Drop leading, trailing, and repeated blank lines.

    A single blank line between two non-blank lines is kept.
    """
    result: list[str] = []
    previous_was_blank = True
    for line in content.split("\n"):
        is_blank = not line.strip()
        if is_blank and previous_was_blank:
            continue
        result.append(line)
        previous_was_blank = is_blank
    while result and not result[-1].strip():
        result.pop()
    return "\n".join(result)


def remove_doc_comments(content: str, grammar: CommentGrammar) -> str:
    """Remove documentation comments only, leaving ordinary comments intact.

    C-style grammar drops `///` lines; Python-style removes triple-quoted blocks.
    Other grammars are returned unchanged.
    """
    if grammar is CommentGrammar.C_STYLE:
        return "\n".join(line for line in content.split("\n") if not line.lstrip().startswith("///"))
    if grammar is CommentGrammar.PYTHON_STYLE:
        result = content
        for pattern in _TRIPLE_QUOTED:
            result = pattern.sub("", result)
        return result
    return content


def generated_markers(grammar: CommentGrammar) -> tuple[str, ...]:
    """Literal tokens flagging a file of this grammar as generated."""
    return tuple(f"{token} {GENERATED_MARKER_TEXT}" for token in SYNTAXES[grammar].opening_tokens)


def has_generated_marker(content: str, grammar: CommentGrammar) -> bool:
    """Check whether `content` carries a generated-file marker anywhere."""
    return any(marker in content for marker in generated_markers(grammar))
