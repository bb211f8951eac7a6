"""
============================================================================
Tag Generation Service
============================================================================
Automatic tags for notes. Explicit #hashtags are always kept; the rest
come from the Generator when it is free, or from entity patterns and
category keyword maps otherwise.
============================================================================
"""

import logging
import re

from ..adapters.base import Generator, Message, is_available
from ..errors import ModelError

logger = logging.getLogger(__name__)

MAX_TAGS = 5

HASHTAG = re.compile(r"#([a-zA-Z][a-zA-Z0-9_-]{1,30})")

# (pattern, tag); several patterns may map to the same tag
ENTITY_PATTERNS = [
    (re.compile(r"\b(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b", re.I), "dated"),
    (
        re.compile(
            r"\b(?:january|february|march|april|may|june|july|august|september|"
            r"october|november|december)\s+\d{1,2}",
            re.I,
        ),
        "dated",
    ),
    (re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"), "dated"),
    (re.compile(r"\b\d{1,2}:\d{2}\s*(?:am|pm)?\b", re.I), "scheduled"),
    (re.compile(r"\$\d+(?:\.\d{2})?|\b\d+\s*(?:dollars|usd|eur|gbp)\b", re.I), "finance"),
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "contact"),
    (re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"), "contact"),
    (re.compile(r"https?://\S+", re.I), "reference"),
]

CATEGORY_KEYWORDS = {
    "work": ["project", "deadline", "client", "meeting", "team", "office", "work", "job", "career"],
    "personal": ["family", "friend", "home", "personal", "self", "life", "health"],
    "health": ["workout", "exercise", "gym", "run", "sleep", "diet", "nutrition", "health", "doctor", "medical"],
    "finance": ["budget", "savings", "investment", "expense", "income", "money", "bank", "pay"],
    "learning": ["learn", "study", "course", "book", "read", "tutorial", "education", "research"],
    "tech": ["code", "programming", "software", "app", "developer", "api", "database", "server"],
    "creative": ["design", "art", "music", "write", "create", "creative", "story", "draw"],
    "travel": ["trip", "flight", "hotel", "travel", "vacation", "visit", "explore"],
    "food": ["recipe", "cook", "restaurant", "food", "meal", "dinner", "lunch", "breakfast"],
    "urgent": ["urgent", "asap", "important", "priority", "critical", "deadline"],
}


def normalize_tag(tag: str) -> str:
    """
    Normalize a tag to lowercase, hyphenated format.

    Examples:
        "Machine Learning" -> "machine-learning"
        "2. Trip Planning" -> "trip-planning"
        "data_structures" -> "data-structures"
    """
    tag = re.sub(r"^[\d\.\-\*\#\s]+", "", tag)
    tag = tag.lower().strip()
    tag = re.sub(r"[\s_]+", "-", tag)
    tag = re.sub(r"[^a-z0-9\-]", "", tag)
    tag = re.sub(r"-+", "-", tag)
    return tag.strip("-")


def extract_hashtags(content: str) -> list[str]:
    return [m.lower() for m in HASHTAG.findall(content)]


def extract_entities(content: str) -> list[str]:
    return [tag for pattern, tag in ENTITY_PATTERNS if pattern.search(content)]


def extract_keywords(content: str) -> list[str]:
    """
    Category tags: two or more distinct keywords present, or a single
    keyword appearing at least twice as a whole word.
    """
    lower = content.lower()
    tags = []
    for tag, keywords in CATEGORY_KEYWORDS.items():
        present = [kw for kw in keywords if kw in lower]
        if len(present) >= 2:
            tags.append(tag)
        elif len(present) == 1:
            occurrences = re.findall(rf"\b{re.escape(present[0])}\b", lower)
            if len(occurrences) >= 2:
                tags.append(tag)
    return tags


def _merge(*groups: list[str], limit: int = MAX_TAGS) -> list[str]:
    merged: list[str] = []
    for group in groups:
        for tag in group:
            if tag and tag not in merged:
                merged.append(tag)
    return merged[:limit]


def extract_tags_with_rules(content: str) -> list[str]:
    return _merge(extract_hashtags(content), extract_entities(content), extract_keywords(content))


def parse_tag_lines(response: str, limit: int = MAX_TAGS) -> list[str]:
    """Parse one-tag-per-line Generator output into normalized tags."""
    raw_tags = [line.strip() for line in response.replace(",", "\n").split("\n") if line.strip()]

    tags: list[str] = []
    for tag in raw_tags:
        tag = re.sub(r"^(?:\d+[.)]|[-*•#])\s*", "", tag).rstrip(".")
        # Sentences are not tags
        if len(tag) > 50 or "." in tag:
            continue
        normalized = normalize_tag(tag)
        if normalized and len(normalized) > 2 and normalized not in tags:
            tags.append(normalized)
    return tags[:limit]


class TagGenerator:
    """
    Service for automatically generating note tags.

    Features:
    - Explicit hashtags always come first
    - Generator tags (2-5, normalized) when the model is free
    - Entity and keyword rules when it is not, or when it returns nothing usable
    """

    def __init__(
        self,
        generator: Generator | None = None,
        max_tags: int = MAX_TAGS,
        min_ai_content_length: int = 20,
    ):
        self.generator = generator
        self.max_tags = max_tags
        self.min_ai_content_length = min_ai_content_length

    async def generate(self, content: str) -> list[str]:
        hashtags = extract_hashtags(content)

        if len(content.strip()) >= self.min_ai_content_length and is_available(self.generator):
            try:
                generated = await self._generate_with_ai(content)
                if generated:
                    tags = _merge(hashtags, generated, limit=self.max_tags)
                    logger.info(f"Generated {len(tags)} tags: {tags}")
                    return tags
            except ModelError as e:
                logger.warning(f"AI tag generation failed, using fallback: {e}")

        return _merge(
            hashtags,
            extract_entities(content),
            extract_keywords(content),
            limit=self.max_tags,
        )

    async def _generate_with_ai(self, content: str) -> list[str]:
        messages = [
            Message(
                role="system",
                content=(
                    "Suggest 2-5 short topic tags for organizing this note.\n"
                    "- Tags should be 1-3 words each\n"
                    "- Use lowercase, hyphenated format (e.g. \"project-x\", \"health\")\n"
                    "- Return ONLY the tags, one per line, no numbering or bullets"
                ),
            ),
            Message(role="user", content=content[:400]),
        ]
        response = await self.generator.generate(messages)
        return parse_tag_lines(response, limit=self.max_tags)
