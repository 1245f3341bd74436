"""Separation of reasoning blocks from model replies."""

import re

# Closed blocks, or an unclosed block running to the end of the reply
_THINKING_BLOCK = re.compile(
    r"<(think|thinking)>(.*?)(?:</\1>|\Z)",
    re.DOTALL | re.IGNORECASE,
)


def strip_thinking(text: str) -> tuple[str, str | None]:
    """Remove <think>/<thinking> blocks from a reply.

    Args:
        text: Raw model reply

    Returns:
        tuple: (reply without reasoning, joined reasoning or None)
    """
    if not text:
        return "", None

    segments = [match.group(2).strip() for match in _THINKING_BLOCK.finditer(text)]
    if not segments:
        return text.strip(), None

    cleaned = _THINKING_BLOCK.sub("", text).strip()
    thinking = "\n\n".join(segment for segment in segments if segment)
    return cleaned, thinking or None


def merge_thinking(*parts: str | None) -> str | None:
    """Join reasoning collected from several sources, skipping empty parts."""
    joined = "\n\n".join(part.strip() for part in parts if part and part.strip())
    return joined or None
