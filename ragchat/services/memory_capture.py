"""
Rule-based memory capture from user turns.

Only the user's message is inspected. Sentences are matched against a
priority-ordered rule table; the first matching rule decides type and scope.
"""

import re
from dataclasses import dataclass

from ragchat.models.memory import MemoryCandidate, MemoryItem, MemoryScope, MemoryType

SENTENCE_SPLIT = re.compile(r"[\n.!?]+")
MIN_SENTENCE_CHARS = 15
MAX_SENTENCE_CHARS = 200
MIN_SENTENCE_WORDS = 4


@dataclass(frozen=True)
class CaptureRule:
    type: MemoryType
    scope: MemoryScope
    pattern: re.Pattern


CAPTURE_RULES = [
    CaptureRule(
        MemoryType.PREFERENCE,
        MemoryScope.GLOBAL,
        re.compile(
            r"^(i (always|never|prefer|like to|want to|don't want|hate)|always use|never use"
            r"|avoid using|use .+ (instead|format|style)|be (concise|brief|verbose|detailed)"
            r"|respond (in|with)|format .+ as)\b",
            re.IGNORECASE,
        ),
    ),
    CaptureRule(
        MemoryType.FACT,
        MemoryScope.CONVERSATION,
        re.compile(
            r"^(i am a|i'm a|i work|my (name|team|company|project|stack|setup|environment)"
            r"|i use .+ for|we use .+ for|our (project|team|stack|codebase|repo)"
            r"|the project (is|uses))\b",
            re.IGNORECASE,
        ),
    ),
    CaptureRule(
        MemoryType.DECISION,
        MemoryScope.CONVERSATION,
        re.compile(
            r"^(i('ve| have) decided|we('ve| have) decided|let's go with|going with"
            r"|i('ve| have) chosen|we('ve| have) chosen|decision:|decided to use)\b",
            re.IGNORECASE,
        ),
    ),
]


def split_sentences(text: str) -> list[str]:
    """Split on sentence punctuation and newlines, keeping mid-sized segments."""
    sentences = []
    for raw in SENTENCE_SPLIT.split(text):
        sentence = " ".join(raw.split())
        if (
            MIN_SENTENCE_CHARS <= len(sentence) <= MAX_SENTENCE_CHARS
            and len(sentence.split(" ")) >= MIN_SENTENCE_WORDS
        ):
            sentences.append(sentence)
    return sentences


def classify(sentence: str) -> CaptureRule | None:
    for rule in CAPTURE_RULES:
        if rule.pattern.match(sentence):
            return rule
    return None


def extract_candidates(
    user_message: str, source_message_id: str | None = None
) -> list[MemoryCandidate]:
    """Every qualifying sentence of the user message, in order."""
    candidates = []
    for sentence in split_sentences(user_message):
        rule = classify(sentence)
        if rule:
            candidates.append(
                MemoryCandidate(
                    type=rule.type,
                    scope=rule.scope,
                    content=sentence,
                    source_message_id=source_message_id,
                )
            )
    return candidates


def normalize_content(content: str) -> str:
    return " ".join(re.sub(r"[^a-z0-9\s]", " ", content.lower()).split())


def memory_key(
    type: MemoryType, scope: MemoryScope, conversation_id: str | None, content: str
) -> str:
    """Dedup key: type, scope, owning conversation (global -> empty) and normalized text."""
    owner = conversation_id if scope == MemoryScope.CONVERSATION else None
    return f"{type.value}|{scope.value}|{owner or ''}|{normalize_content(content)}"


def dedupe_candidates(
    candidates: list[MemoryCandidate], existing: list[MemoryItem], conversation_id: str
) -> list[MemoryCandidate]:
    """Drop candidates matching an existing active item or an earlier candidate."""
    seen = {
        memory_key(item.type, item.scope, item.conversation_id, item.content)
        for item in existing
        if item.is_active()
    }
    survivors = []
    for candidate in candidates:
        key = memory_key(candidate.type, candidate.scope, conversation_id, candidate.content)
        if key in seen:
            continue
        seen.add(key)
        survivors.append(candidate)
    return survivors


def capture_candidates(
    user_message: str,
    conversation_id: str,
    existing: list[MemoryItem],
    max_candidates: int = 3,
    source_message_id: str | None = None,
) -> list[MemoryCandidate]:
    """
    Candidates worth persisting for one turn.

    The first ``max_candidates`` qualifying sentences are taken, then
    deduplicated within the turn and against existing items.
    """
    candidates = extract_candidates(user_message, source_message_id)[:max_candidates]
    if not candidates:
        return []
    return dedupe_candidates(candidates, existing, conversation_id)
