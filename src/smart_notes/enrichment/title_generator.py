"""
============================================================================
Title Generation Service
============================================================================
Short titles for notes, from the Generator when it is free and from
first-line heuristics otherwise
============================================================================
"""

import logging
import re

from ..adapters.base import Generator, Message, is_available
from ..errors import ModelError
from ..models import NoteType

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 50
PREVIEW_LENGTH = 350
UNTITLED = "Untitled Note"

TITLE_EXAMPLES = {
    NoteType.MEETING: "Example: 'Team Sync' or 'Design Review'",
    NoteType.TASK: "Example: 'Daily Tasks' or 'Finish Report'",
    NoteType.IDEA: "Example: 'AI Automation Idea'",
    NoteType.JOURNAL: "Example: 'Gratitude Today'",
    NoteType.REFERENCE: "Example: 'React Hooks Guide'",
}
DEFAULT_EXAMPLE = "Example: 'Meeting Notes' or 'Project Ideas'"

# (first-line pattern, note types it applies to)
TYPE_PREFIX_PATTERNS = [
    (
        re.compile(
            r"^(?:meeting|call|sync|standup|1:1|review|planning)\s+(?:with|about|for|re:?)\s+(.+)",
            re.I,
        ),
        {NoteType.MEETING},
    ),
    (re.compile(r"^(?:todo|task|action)\s*:?\s*(.+)", re.I), {NoteType.TASK}),
    (re.compile(r"^(?:idea|thought|concept)\s*:?\s*(.+)", re.I), {NoteType.IDEA}),
    (re.compile(r"^(?:note|notes)\s*:?\s*(.+)", re.I), {NoteType.NOTE, NoteType.REFERENCE}),
    (re.compile(r"^(?:journal|diary|reflection)\s*:?\s*(.+)", re.I), {NoteType.JOURNAL}),
]

_HEADING = re.compile(r"^#{1,6}\s*")


def truncate_title(title: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    """Cut at a word boundary past the midpoint when possible, adding '...'."""
    if len(title) <= max_length:
        return title
    truncated = title[: max_length - 3]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.5:
        truncated = truncated[:last_space]
    return truncated + "..."


def clean_title_response(response: str) -> str:
    title = response.strip()
    title = re.sub(r"^(Title|Subject|Name):\s*", "", title, flags=re.I)
    title = title.split("\n", 1)[0].strip()
    title = re.sub(r"^[\"']|[\"']$", "", title)
    title = " ".join(title.split())
    return truncate_title(title)


def extract_title_from_content(content: str, note_type: NoteType | None = None) -> str | None:
    """
    Rule-based title: a short first line, or a first line that opens with a
    type marker such as "Meeting with ..." or "TODO: ...".
    """
    lines = [line for line in content.split("\n") if line.strip()]
    if not lines:
        return None

    first_line = lines[0].strip()

    if len(first_line) <= MAX_TITLE_LENGTH and not first_line.endswith((".", ",")):
        cleaned = _HEADING.sub("", first_line)
        if 3 < len(cleaned) <= MAX_TITLE_LENGTH:
            return cleaned

    for pattern, types in TYPE_PREFIX_PATTERNS:
        if note_type is not None and note_type not in types:
            continue
        match = pattern.match(first_line)
        if match and 3 < len(match.group(1).strip()) <= MAX_TITLE_LENGTH:
            return first_line

    return None


def fallback_title(content: str, note_type: NoteType | None = None) -> str:
    """
    Last-resort title: the first line stripped of markdown, optionally
    prefixed with the note type. Never empty.
    """
    first_line = content.split("\n", 1)[0].strip()

    cleaned = _HEADING.sub("", first_line)
    cleaned = re.sub(r"\*\*|\*|__|_|~~|`", "", cleaned)
    cleaned = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", cleaned)
    cleaned = re.sub(r"^[-•*]\s*", "", cleaned)
    cleaned = re.sub(r"^\d+[.)]\s*", "", cleaned)
    cleaned = re.sub(r"^\[[\sx]\]\s*", "", cleaned, flags=re.I)
    cleaned = cleaned.strip()

    if (
        note_type is not None
        and note_type != NoteType.NOTE
        and len(cleaned) < 30
        and note_type.value not in cleaned.lower()
    ):
        cleaned = f"{note_type.value.capitalize()}: {cleaned}"

    return truncate_title(cleaned) or UNTITLED


class TitleGenerator:
    """
    Generates note titles.

    Order of preference:
    1. Generator output (content of 20+ characters, Generator free)
    2. Rule-based first-line extraction
    3. ``fallback_title``
    """

    def __init__(self, generator: Generator | None = None, min_ai_content_length: int = 20):
        self.generator = generator
        self.min_ai_content_length = min_ai_content_length

    async def generate(self, content: str, note_type: NoteType | None = None) -> str:
        if len(content.strip()) < self.min_ai_content_length:
            return fallback_title(content, note_type)

        if is_available(self.generator):
            try:
                title = await self._generate_with_ai(content, note_type)
                if len(title) > 3:
                    return title
                logger.debug(f"Discarding too-short generated title: '{title}'")
            except ModelError as e:
                logger.warning(f"AI title generation failed, using fallback: {e}")

        return extract_title_from_content(content, note_type) or fallback_title(content, note_type)

    async def _generate_with_ai(self, content: str, note_type: NoteType | None) -> str:
        example = TITLE_EXAMPLES.get(note_type, DEFAULT_EXAMPLE)
        messages = [
            Message(
                role="system",
                content=(
                    f"Create a short title (max {MAX_TITLE_LENGTH} chars). {example} "
                    "Reply with title only, no quotes."
                ),
            ),
            Message(role="user", content=content[:PREVIEW_LENGTH].strip()),
        ]
        response = await self.generator.generate(messages)
        return clean_title_response(response)
