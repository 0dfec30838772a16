"""Presentation formatting for assistant replies.

Assistant text comes from a remote, only partially trusted service, so it is
never spliced into markup directly. It is parsed into a small document tree
(paragraphs, lists, strong/emphasis runs) and every text leaf is escaped when
the tree is rendered.
"""

import html
import re
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)

_BOLD = re.compile(r"\*\*(.+?)\*\*", re.DOTALL)
_ITALIC = re.compile(r"\*(.+?)\*", re.DOTALL)
_BLOCK_SPLIT = re.compile(r"\n\s*\n")
_LIST_ITEM = re.compile(r"^\d+\.\s*\*\*(?P<label>.+?)\*\*:\s*(?P<body>.*)$")


@dataclass
class Text:
    value: str

    def to_html(self) -> str:
        return html.escape(self.value, quote=False)


@dataclass
class Emphasis:
    children: list = field(default_factory=list)

    def to_html(self) -> str:
        return f"<em>{_render_all(self.children)}</em>"


@dataclass
class Strong:
    children: list = field(default_factory=list)

    def to_html(self) -> str:
        return f"<strong>{_render_all(self.children)}</strong>"


@dataclass
class Paragraph:
    children: list = field(default_factory=list)

    def to_html(self) -> str:
        return f"<p>{_render_all(self.children)}</p>"


@dataclass
class ListItem:
    """Numbered ``N. **label**: body`` line."""
    label: list = field(default_factory=list)
    body: list = field(default_factory=list)

    def to_html(self) -> str:
        body = _render_all(self.body)
        suffix = f": {body}" if body else ":"
        return f"<li><strong>{_render_all(self.label)}</strong>{suffix}</li>"


@dataclass
class BulletList:
    items: list[ListItem] = field(default_factory=list)

    def to_html(self) -> str:
        return f"<ul>{_render_all(self.items)}</ul>"


def _render_all(nodes) -> str:
    return "".join(node.to_html() for node in nodes)


def _split_by(pattern: re.Pattern, text: str, wrap, inner) -> list:
    nodes = []
    pos = 0
    for match in pattern.finditer(text):
        if match.start() > pos:
            nodes.extend(inner(text[pos:match.start()]))
        nodes.append(wrap(inner(match.group(1))))
        pos = match.end()
    if pos < len(text):
        nodes.extend(inner(text[pos:]))
    return nodes


def _parse_emphasis(text: str) -> list:
    return _split_by(_ITALIC, text, Emphasis, lambda s: [Text(s)])


def parse_inline(text: str) -> list:
    """Parse ``**strong**`` runs first, then ``*emphasis*`` inside and around them."""
    return _split_by(_BOLD, text, Strong, _parse_emphasis)


def parse(text: str) -> list:
    """Build the block-level document tree for a reply."""
    blocks: list = []
    for chunk in _BLOCK_SPLIT.split(text.strip()):
        pending: list[str] = []

        def flush():
            paragraph = "\n".join(pending).strip()
            if paragraph:
                blocks.append(Paragraph(parse_inline(paragraph)))
            pending.clear()

        for line in chunk.splitlines():
            match = _LIST_ITEM.match(line.strip())
            if match is None:
                pending.append(line.strip())
                continue
            flush()
            item = ListItem(
                label=_parse_emphasis(match.group("label")),
                body=parse_inline(match.group("body").strip()),
            )
            if blocks and isinstance(blocks[-1], BulletList):
                blocks[-1].items.append(item)
            else:
                blocks.append(BulletList([item]))
        flush()
    return blocks


def render(blocks: list) -> str:
    return _render_all(blocks)


def format_message(text: str) -> str:
    """Turn a raw assistant reply into display markup.

    Never raises: if formatting fails for any reason, or the text has no
    visible content, the original text is returned so the conversation is
    never blanked.
    """
    if not text:
        return text
    try:
        blocks = parse(text)
        if not blocks:
            return text
        return render(blocks)
    except Exception as e:
        logger.error("formatter.failed", error=str(e), text_len=len(text))
        return text
