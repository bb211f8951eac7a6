"""
============================================================================
Note Type Classifier
============================================================================
Sorts notes into meeting / task / idea / journal / reference / note.
Voice and scan are capture types and never come out of classification.
============================================================================
"""

import logging
import re
from dataclasses import dataclass

from ..adapters.base import Generator, Message, is_available
from ..errors import ModelError
from ..models import NoteType

logger = logging.getLogger(__name__)

VALID_TYPES = [
    NoteType.MEETING,
    NoteType.TASK,
    NoteType.IDEA,
    NoteType.JOURNAL,
    NoteType.REFERENCE,
    NoteType.NOTE,
]

CLASSIFY_PROMPT = """Classify notes into categories. Reply with ONLY the category name.

Categories:
- meeting - discussions with people, calls, meetings, standups, sync sessions, recaps
- task - todos, action items, checkboxes, deadlines, things to do, reminders
- idea - brainstorms, concepts, "what if" thoughts, hypotheses, creative exploration
- journal - personal reflections, daily logs, feelings, moods, diary entries, gratitude
- reference - facts, documentation, code, links, guides, how-tos, definitions
- note - general notes that don't fit the above

Examples:
"Team sync at 2pm. Discussed Q1 goals. Action: John to send proposal by Friday." -> meeting
"- Buy groceries\\n- Call dentist\\n- Finish report" -> task
"What if we used AI to auto-categorize notes? Could save time." -> idea
"Feeling grateful today. Had a great conversation with mom." -> journal
"Python list comprehension: [x*2 for x in range(10)]" -> reference"""

KEYWORD_WEIGHTS: dict[NoteType, dict[str, float]] = {
    NoteType.MEETING: {
        "meeting": 3, "call": 2, "sync": 2.5, "standup": 3, "1:1": 3,
        "discussed": 2, "attendees": 3, "agenda": 2.5, "action items": 2.5,
        "follow-up": 2, "participants": 2.5, "zoom": 2, "recap": 2,
    },
    NoteType.TASK: {
        "todo": 3, "to-do": 3, "task": 2.5, "[ ]": 3, "[x]": 3, "due": 2,
        "deadline": 2.5, "need to": 2, "must": 1.5, "priority": 2,
        "urgent": 2.5, "reminder": 2,
    },
    NoteType.IDEA: {
        "idea": 3, "thought": 2, "what if": 2.5, "maybe": 1.5, "brainstorm": 3,
        "concept": 2, "hypothesis": 2.5, "wonder": 2, "imagine": 2,
        "potential": 1.5, "experiment": 2,
    },
    NoteType.JOURNAL: {
        "today": 2, "feeling": 2.5, "felt": 2, "grateful": 3, "reflection": 2.5,
        "diary": 3, "mood": 2, "woke up": 2, "day was": 2, "stressed": 2,
        "happy": 2, "sad": 2, "excited": 2,
    },
    NoteType.REFERENCE: {
        "definition": 2.5, "reference": 2.5, "source": 2, "article": 2,
        "documentation": 2.5, "guide": 2, "tutorial": 2, "how to": 2,
        "example": 1.5, "syntax": 2,
    },
}

_BULLET = re.compile(r"^\s*[-•*]\s")
_NUMBERED = re.compile(r"^\s*\d+[.)]\s")
_CHECKBOX = re.compile(r"\[[\sx]\]", re.I)
_CODE = re.compile(r"```[\s\S]*?```|`[^`]+`")
_URL = re.compile(r"https?://|www\.", re.I)
_FIRST_PERSON = re.compile(r"\bi\s|\bmy\b|\bme\b|\bmyself\b|\bi'm\b|\bi've\b|\bi'll\b")
_TIME_REFERENCE = re.compile(
    r"\d{1,2}:\d{2}|\d{1,2}\s*(am|pm)|morning|afternoon|evening|today|yesterday|tomorrow",
    re.I,
)


@dataclass
class ClassificationResult:
    type: NoteType
    confidence: float


def classify_with_rules(content: str) -> ClassificationResult:
    """
    Score each type from document structure and weighted keywords.

    A best score below 2 means no strong signal and yields ``note``.
    """
    lower = content.lower()
    lines = [line for line in content.split("\n") if line.strip()]
    scores = {t: 0.0 for t in VALID_TYPES}

    # Structure
    bullet_lines = sum(1 for line in lines if _BULLET.match(line))
    numbered_lines = sum(1 for line in lines if _NUMBERED.match(line))
    checkbox_lines = sum(1 for line in lines if _CHECKBOX.search(line))

    if checkbox_lines:
        scores[NoteType.TASK] += checkbox_lines * 3
    if bullet_lines > 2:
        scores[NoteType.TASK] += 1.5
        scores[NoteType.MEETING] += 1
    if numbered_lines > 2:
        scores[NoteType.TASK] += 1.5
        scores[NoteType.REFERENCE] += 1

    question_count = content.count("?")
    if question_count > 2:
        scores[NoteType.IDEA] += question_count * 0.5

    if _CODE.search(content):
        scores[NoteType.REFERENCE] += 2.5
    if _URL.search(content):
        scores[NoteType.REFERENCE] += 2

    words = len(lower.split())
    if words:
        density = len(_FIRST_PERSON.findall(lower)) / words
        if density > 0.05:
            scores[NoteType.JOURNAL] += density * 30

    if _TIME_REFERENCE.search(content):
        scores[NoteType.MEETING] += 1
        scores[NoteType.JOURNAL] += 1

    # Keywords
    for note_type, weights in KEYWORD_WEIGHTS.items():
        for word, weight in weights.items():
            if word in lower:
                scores[note_type] += weight

    best_type, best_score = NoteType.NOTE, 0.0
    for note_type, score in scores.items():
        if score > best_score:
            best_type, best_score = note_type, score

    if best_score < 2:
        return ClassificationResult(NoteType.NOTE, 0.8)

    ranked = sorted(scores.values(), reverse=True)
    diff = ranked[0] - ranked[1]
    confidence = min(0.4 + diff * 0.1 + best_score * 0.03, 0.95)
    return ClassificationResult(best_type, confidence)


def parse_type_response(response: str) -> NoteType | None:
    """Map a Generator reply such as 'Category: Meeting.' to a NoteType."""
    cleaned = response.strip().lower()
    cleaned = re.sub(r"^(category|type|answer|result):\s*", "", cleaned)
    cleaned = re.sub(r"[.,;!?]$", "", cleaned)
    words = cleaned.split()
    first = words[0] if words else ""

    for note_type in VALID_TYPES:
        if first == note_type.value:
            return note_type
    for note_type in VALID_TYPES:
        if note_type.value in first:
            return note_type
    return None


class NoteClassifier:
    """Generator-backed classification with a rule-based fallback."""

    def __init__(self, generator: Generator | None = None, min_ai_content_length: int = 20):
        self.generator = generator
        self.min_ai_content_length = min_ai_content_length

    async def classify(self, content: str) -> NoteType:
        if len(content.strip()) >= self.min_ai_content_length and is_available(self.generator):
            try:
                response = await self.generator.generate(
                    [
                        Message(role="system", content=CLASSIFY_PROMPT),
                        Message(role="user", content=content[:400]),
                    ]
                )
                note_type = parse_type_response(response)
                if note_type is not None:
                    return note_type
                logger.debug(f"Unrecognized classification response: '{response}'")
            except ModelError as e:
                logger.warning(f"AI classification failed, using fallback: {e}")

        return classify_with_rules(content).type
