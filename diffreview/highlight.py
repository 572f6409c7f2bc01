"""Syntax highlighting for diff rows.

Each contiguous block (a hunk or a revealed gap range) is highlighted once so
multi-line constructs such as strings and comments keep their styling, and
the resulting markup is then cut back into one fragment per source line.
"""

from __future__ import annotations

from functools import lru_cache
from html import escape
from pathlib import PurePosixPath
from typing import Callable

from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexer import Lexer
from pygments.lexers import get_lexer_by_name

SPECIAL_FILENAMES = {
    "dockerfile": "docker",
    "makefile": "make",
    "gnumakefile": "make",
    "cmakelists.txt": "cmake",
    ".bashrc": "bash",
    ".zshrc": "bash",
    ".profile": "bash",
    "nginx.conf": "nginx",
}

EXTENSION_LANGUAGES = {
    # JavaScript / TypeScript
    "js": "javascript", "jsx": "jsx", "mjs": "javascript", "cjs": "javascript",
    "ts": "typescript", "tsx": "tsx", "mts": "typescript", "cts": "typescript",
    # Systems
    "rs": "rust", "go": "go", "c": "c", "h": "c", "cpp": "cpp", "cc": "cpp",
    "cxx": "cpp", "hpp": "cpp", "hh": "cpp",
    # JVM / .NET
    "java": "java", "kt": "kotlin", "kts": "kotlin", "scala": "scala", "cs": "csharp",
    # Scripting
    "py": "python", "rb": "ruby", "php": "php", "lua": "lua", "pl": "perl",
    "pm": "perl", "r": "r",
    # Mobile / functional
    "swift": "swift", "dart": "dart", "ex": "elixir", "exs": "elixir", "hs": "haskell",
    # Shell
    "sh": "bash", "bash": "bash", "zsh": "bash", "fish": "fish",
    # Data / config
    "json": "json", "yaml": "yaml", "yml": "yaml", "toml": "toml", "ini": "ini", "cfg": "ini",
    # Markup / style
    "html": "html", "htm": "html", "xml": "xml", "svg": "xml", "xsl": "xml",
    "vue": "html", "svelte": "html",
    "css": "css", "scss": "scss", "less": "less", "sass": "sass",
    # Query / schema
    "sql": "sql", "graphql": "graphql", "gql": "graphql", "proto": "protobuf",
    # Build / infra
    "dockerfile": "docker", "makefile": "make", "mk": "make", "cmake": "cmake",
    # Docs / misc
    "md": "markdown", "mdx": "markdown", "diff": "diff", "patch": "diff",
    "conf": "nginx", "nginx": "nginx",
}

_FORMATTER = HtmlFormatter(nowrap=True)


def detect_language(file_path: str) -> str | None:
    """Resolve a Pygments lexer alias from a file path; None for unknown types."""
    name = PurePosixPath(str(file_path).replace("\\", "/")).name.lower()
    if name in SPECIAL_FILENAMES:
        return SPECIAL_FILENAMES[name]
    if name.startswith("dockerfile."):
        return "docker"
    if "." not in name:
        return None
    return EXTENSION_LANGUAGES.get(name.rsplit(".", 1)[1])


def escape_html(text: str) -> str:
    return escape(text, quote=False).replace('"', "&quot;")


def split_highlighted_lines(html: str) -> list[str]:
    """Split highlighted markup at newlines keeping every fragment balanced.

    Tags open across a newline are closed at the end of the fragment and
    re-opened, in their original order, at the start of the next one.
    Unbalanced input never raises; whatever is buffered becomes the last
    fragment.
    """
    lines: list[str] = []
    current: list[str] = []
    open_tags: list[str] = []

    index = 0
    length = len(html)
    while index < length:
        char = html[index]
        if char == "\n":
            current.extend("</span>" for _ in open_tags)
            lines.append("".join(current))
            current = list(open_tags)
            index += 1
        elif char == "<":
            tag_end = html.find(">", index)
            if tag_end == -1:
                current.append(html[index:])
                break
            tag = html[index : tag_end + 1]
            if tag.startswith("</"):
                if open_tags:
                    open_tags.pop()
                current.append(tag)
            elif tag.endswith("/>"):
                current.append(tag)
            else:
                open_tags.append(tag)
                current.append(tag)
            index = tag_end + 1
        else:
            next_special = index + 1
            while next_special < length and html[next_special] not in "\n<":
                next_special += 1
            current.append(html[index:next_special])
            index = next_special

    if current or lines:
        lines.append("".join(current))
    return lines


@lru_cache(maxsize=64)
def _lexer_for(language: str) -> Lexer:
    return get_lexer_by_name(language, stripnl=False, ensurenl=False, startinline=True)


def highlight_lines(lines: list[str], language: str | None) -> list[str]:
    """Highlight ``lines`` as one block and return one HTML fragment per line.

    Unknown languages and highlighter failures fall back to escaped text.
    """
    if not language or not lines:
        return [escape_html(line) for line in lines]
    try:
        markup = pygments_highlight("\n".join(lines), _lexer_for(language), _FORMATTER)
        fragments = split_highlighted_lines(markup)
    except Exception:  # noqa: BLE001
        return [escape_html(line) for line in lines]
    if len(fragments) == len(lines) + 1 and fragments[-1] == "":
        fragments.pop()
    if len(fragments) != len(lines):
        return [escape_html(line) for line in lines]
    return fragments


def block_highlighter(file_path: str) -> Callable[[list[str]], list[str]]:
    language = detect_language(file_path)

    def _highlight(lines: list[str]) -> list[str]:
        return highlight_lines(lines, language)

    return _highlight
