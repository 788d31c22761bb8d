"""Markdown rendering and plain-text extraction for articles."""

from __future__ import annotations

import re

from markdown_it import MarkdownIt

__all__ = ["markdown_to_html", "filter_text", "filter_links"]

_LINK = re.compile(r"https?://[^\s]+")


def _build_parser() -> MarkdownIt:
    parser = MarkdownIt("commonmark", {"html": True, "typographer": True})
    parser.enable(["table", "strikethrough", "replacements", "smartquotes"])
    return parser


_PARSER = _build_parser()


def markdown_to_html(markdown_input: str) -> str:
    """Render Markdown to HTML."""
    return _PARSER.render(markdown_input)


def _texts(tokens):
    for token in tokens:
        if token.type in ("text", "fence", "code_block"):
            yield token.content
        elif token.type in ("softbreak", "hardbreak"):
            yield "\n\n"
        if token.children:
            yield from _texts(token.children)


def filter_text(markdown_input: str) -> str:
    """Extract readable text from Markdown, with links replaced by line breaks."""
    return filter_links("".join(_texts(_PARSER.parse(markdown_input))))


def filter_links(text: str) -> str:
    """Replace every http(s) URL with a newline."""
    return _LINK.sub("\n", text)