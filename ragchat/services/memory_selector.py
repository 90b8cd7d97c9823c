"""
Memory selection for prompt injection.

Ranks visible active items against the user message and admits them
greedily under a token budget.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime

from ragchat.config import MemoryConfig
from ragchat.models.memory import MemoryItem, UsedMemoryItem

MEMORY_BLOCK_HEADER = (
    "User memory (curated preferences/facts/decisions). "
    "Use when relevant and do not contradict newer user instructions:"
)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def tokenize(text: str) -> set[str]:
    """Lower-cased alphanumeric terms longer than two characters."""
    return {term for term in _NON_ALNUM.sub(" ", text.lower()).split() if len(term) > 2}


def lexical_overlap(query_terms: set[str], item_terms: set[str]) -> float:
    """Fraction of query terms present in the item (0 if either side is empty)."""
    if not query_terms or not item_terms:
        return 0.0
    return len(query_terms & item_terms) / len(query_terms)


def recency_weight(timestamp: datetime, now: datetime, decay_days: float) -> float:
    age_days = max(0.0, (now - timestamp).total_seconds() / 86400)
    return math.exp(-age_days / decay_days)


def estimate_item_tokens(content: str) -> int:
    return max(1, math.ceil(len(content) / 4))


def format_memory_block(items: list[UsedMemoryItem]) -> str:
    lines = [f"{i}. [{item.type.value}] {item.content}" for i, item in enumerate(items, start=1)]
    return MEMORY_BLOCK_HEADER + "\n" + "\n".join(lines)


@dataclass
class _Scored:
    item: MemoryItem
    score: float
    tokens: int


def select_memory(
    candidates: list[MemoryItem],
    user_message: str,
    config: MemoryConfig,
    token_budget: int | None = None,
    now: datetime | None = None,
) -> list[UsedMemoryItem]:
    """
    Choose memory items to inject for a turn.

    Args:
        candidates: Active items visible to the conversation
        user_message: Live user message used for lexical scoring
        config: Weights, decay and overheads
        token_budget: Overrides ``config.token_budget``
        now: Clock for recency (defaults to now)

    Returns:
        Selected items, highest score first; total estimated cost
        (header + per-item overhead + content/4) never exceeds the budget
    """
    budget = config.token_budget if token_budget is None else token_budget
    if budget <= 0 or not candidates:
        return []

    now = now or datetime.now()
    superseded = {item.supersedes_memory_id for item in candidates if item.supersedes_memory_id}
    query_terms = tokenize(user_message)

    ranked = []
    for item in candidates:
        if item.id in superseded:
            continue
        score = (
            config.lexical_weight * lexical_overlap(query_terms, tokenize(item.content))
            + config.recency_weight
            * recency_weight(item.last_used_at or item.updated_at, now, config.recency_decay_days)
            + config.frequency_weight
            * (min(item.use_count, config.frequency_cap) / config.frequency_cap)
        )
        ranked.append(_Scored(item=item, score=score, tokens=estimate_item_tokens(item.content)))

    # Stable sort keeps store order among equal scores
    ranked.sort(key=lambda scored: scored.score, reverse=True)

    selected = []
    used = config.header_overhead_tokens
    for scored in ranked:
        cost = scored.tokens + config.per_item_overhead_tokens
        if used + cost > budget:
            # Skip, a cheaper item further down may still fit
            continue
        selected.append(
            UsedMemoryItem(id=scored.item.id, type=scored.item.type, content=scored.item.content)
        )
        used += cost

    return selected
