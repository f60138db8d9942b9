"""
Context budgeting: reduce a conversation to a prompt that fits the window.

Multi-turn ("memory") mode always keeps the latest message, then walks the
history newest-first and stops at the first message that would overflow the
prompt budget. Older messages are never considered once one has missed, so
the selection is always a contiguous suffix of the conversation.

Single-turn mode (the default) uses the latest message only.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Sequence

from .models import ChatMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptBudget:
    """Token budget for one request."""
    context_limit: int = 4096
    response_reserve: int = 1536

    @property
    def prompt_limit(self) -> int:
        return self.context_limit - self.response_reserve


@dataclass
class BuiltPrompt:
    """Prompt text plus the messages it was built from."""
    text: str
    messages: List[ChatMessage] = field(default_factory=list)
    estimated_tokens: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.messages


def estimate_tokens(text: str) -> int:
    """One token per character."""
    return int(math.ceil(len(text) / 1.0))


def render_line(message: ChatMessage) -> str:
    return f"{message.role.value}: {message.content}"


def message_cost(message: ChatMessage) -> int:
    """Cost of a message as it appears in the prompt, trailing newline included."""
    return estimate_tokens(render_line(message) + "\n")


def build_prompt(
    messages: Sequence[ChatMessage],
    budget: PromptBudget,
    memory_mode: bool = False,
) -> BuiltPrompt:
    """
    Build the prompt for a conversation.

    Args:
        messages: Conversation in chronological order
        budget: Token budget for this request
        memory_mode: Include as much recent history as fits

    Returns:
        BuiltPrompt; empty when the conversation is empty.
    """
    if not messages:
        return BuiltPrompt(text="")

    latest = messages[-1]
    selected = [latest]
    total = message_cost(latest)

    if memory_mode:
        for message in reversed(messages[:-1]):
            cost = message_cost(message)
            if total + cost > budget.prompt_limit:
                break
            total += cost
            selected.insert(0, message)

        logger.debug(
            f"Prompt built from {len(selected)}/{len(messages)} messages, "
            f"estimated tokens: {total} (limit {budget.prompt_limit})"
        )

    text = "\n".join(render_line(m) for m in selected)
    return BuiltPrompt(text=text, messages=selected, estimated_tokens=total)
