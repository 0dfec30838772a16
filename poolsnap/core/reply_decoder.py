"""Reply decoder for the analysis webhook.

The webhook may pack several logical replies into one payload by embedding
each of them as a quoted ``srcdoc`` attribute inside otherwise-discarded
markup. This module is the only place that knows about that packing.
"""

import re

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_ATTRIBUTE = "srcdoc"

# Applied in this exact order. "&amp;lt;" therefore ends up as "<".
_ENTITIES = (
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
)


def _attribute_pattern(attribute: str) -> re.Pattern:
    return re.compile(rf'{re.escape(attribute)}="([^"]*)"')


_DEFAULT_PATTERN = _attribute_pattern(DEFAULT_ATTRIBUTE)


def unescape_entities(text: str) -> str:
    """Undo the HTML entity escaping the webhook applies to segment bodies."""
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text


def decode(raw: str, attribute: str = DEFAULT_ATTRIBUTE) -> list[str]:
    """Split a raw webhook reply into ordered reply segments.

    Args:
        raw: Response body exactly as received.
        attribute: Name of the attribute that carries each segment.

    Returns:
        Segments in order of appearance. Plain-text replies, and markup that
        carries no matching attribute, come back as ``[raw]``.
    """
    if "<" not in raw and ">" not in raw:
        return [raw]

    pattern = _DEFAULT_PATTERN if attribute == DEFAULT_ATTRIBUTE else _attribute_pattern(attribute)
    segments = [unescape_entities(m.group(1)) for m in pattern.finditer(raw)]

    if not segments:
        logger.debug("decoder.no_segments", raw_len=len(raw))
        return [raw]

    logger.debug("decoder.segments", count=len(segments))
    return segments
