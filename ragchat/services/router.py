"""
Model routing for conversations set to ``auto``.

Prompts are scored against two regex signal tables; the counts pick the
code, reasoning or default model.
"""

import re
from dataclasses import dataclass

from ragchat.config import LLMConfig
from ragchat.models.conversation import AUTO_MODEL
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)

CODE_SIGNALS = [
    re.compile(
        r"\b(code|coding|program|programming|implement|function|class|method|variable|algorithm)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(javascript|typescript|python|rust|golang|java|c\+\+|html|css|sql|react|nextjs|node)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(bug|debug|refactor|compile|runtime|syntax|error|exception|stack\s*trace|lint)\b",
        re.IGNORECASE,
    ),
    re.compile(r"```"),
    re.compile(r"=>"),
    re.compile(r"\b(import|export|const|let|var|def|fn|func|async|await)\b"),
    re.compile(r"\.(ts|js|py|rs|go|java|cpp|tsx|jsx)\b"),
]

REASONING_SIGNALS = [
    re.compile(r"\b(analyze|analyse|analysis|evaluate|compare|contrast|assess|critique)\b", re.IGNORECASE),
    re.compile(r"\b(reason|reasoning|logic|logical|proof|prove|theorem|hypothesis)\b", re.IGNORECASE),
    re.compile(
        r"\b(explain\s+(in\s+detail|thoroughly|deeply)|step[\s-]by[\s-]step|break\s+down)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(math|calculus|equation|formula|derive|derivation|integral|differential)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(essay|paper|report|thesis|dissertation|write\s+(a\s+)?(detailed|comprehensive|thorough))\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(strategy|strategic|plan\s+for|design\s+a\s+system|architect)\b", re.IGNORECASE),
]

LONG_PROMPT_CHARS = 500

REASON_CODE = "code detected"
REASON_REASONING = "complex reasoning"
REASON_DEFAULT = "default"


@dataclass(frozen=True)
class ModelResolution:
    model: str
    reason: str | None


def count_signals(patterns: list[re.Pattern], prompt: str) -> int:
    return sum(1 for pattern in patterns if pattern.search(prompt))


def route_prompt(prompt: str, config: LLMConfig) -> ModelResolution:
    """
    Pick a model for a prompt.

    Rules, first match wins:
    - 2+ code signals -> code model
    - 2+ reasoning signals, or 1+ in a long prompt -> reasoning model
    - exactly 1 code signal -> code model
    - otherwise -> default model
    """
    code_score = count_signals(CODE_SIGNALS, prompt)
    reasoning_score = count_signals(REASONING_SIGNALS, prompt)

    rules = [
        (code_score >= 2, config.code_model, REASON_CODE),
        (
            reasoning_score >= 2 or (reasoning_score >= 1 and len(prompt) > LONG_PROMPT_CHARS),
            config.reasoning_model,
            REASON_REASONING,
        ),
        (code_score == 1, config.code_model, REASON_CODE),
    ]
    for matched, model, reason in rules:
        if matched:
            return ModelResolution(model=model, reason=reason)
    return ModelResolution(model=config.default_model, reason=REASON_DEFAULT)


def resolve_model(conversation_model: str, user_message: str, config: LLMConfig) -> ModelResolution:
    """Use the conversation's model as-is unless it is ``auto``."""
    if conversation_model != AUTO_MODEL:
        return ModelResolution(model=conversation_model, reason=None)

    resolution = route_prompt(user_message, config)
    logger.info(
        f'Routed "{user_message[:80]}" -> {resolution.model} ({resolution.reason})'
    )
    return resolution
