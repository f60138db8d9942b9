"""Tests for conversation-to-prompt budgeting."""

from worker_gateway.budget import PromptBudget, build_prompt, estimate_tokens, message_cost
from worker_gateway.models import ChatMessage


def _msg(content: str, role: str = "user") -> ChatMessage:
    return ChatMessage(role=role, content=content)


def _msg_with_cost(cost: int, role: str = "user") -> ChatMessage:
    """Message whose rendered prompt line costs exactly ``cost`` tokens."""
    overhead = len(f"{role}: ") + 1
    msg = _msg("x" * (cost - overhead), role)
    assert message_cost(msg) == cost
    return msg


class TestEstimateTokens:
    def test_one_token_per_character(self):
        assert estimate_tokens("hello") == 5

    def test_empty(self):
        assert estimate_tokens("") == 0

    def test_counts_characters_not_bytes(self):
        assert estimate_tokens("안녕하세요") == 5


class TestPromptBudget:
    def test_defaults(self):
        budget = PromptBudget()
        assert budget.context_limit == 4096
        assert budget.response_reserve == 1536
        assert budget.prompt_limit == 2560


class TestSingleTurn:
    def test_empty_conversation(self):
        prompt = build_prompt([], PromptBudget())
        assert prompt.text == ""
        assert prompt.is_empty

    def test_uses_latest_message_only(self):
        msgs = [_msg("be brief", "system"), _msg("first"), _msg("ok", "assistant"), _msg("second")]
        prompt = build_prompt(msgs, PromptBudget(), memory_mode=False)
        assert prompt.text == "user: second"
        assert prompt.messages == [msgs[-1]]


class TestMemoryMode:
    def test_includes_history_in_chronological_order(self):
        msgs = [_msg("be brief", "system"), _msg("hi"), _msg("hello!", "assistant"), _msg("how are you?")]
        prompt = build_prompt(msgs, PromptBudget(), memory_mode=True)
        assert prompt.text == (
            "system: be brief\n"
            "user: hi\n"
            "assistant: hello!\n"
            "user: how are you?"
        )
        assert prompt.messages == msgs

    def test_stops_at_first_message_that_does_not_fit(self):
        oldest = _msg_with_cost(50)
        huge = _msg_with_cost(3000)
        recent = _msg_with_cost(10)
        latest = _msg_with_cost(20)
        budget = PromptBudget(context_limit=200, response_reserve=100)

        prompt = build_prompt([oldest, huge, recent, latest], budget, memory_mode=True)

        # The 50-cost message would fit, but the walk stops at the 3000-cost one.
        assert prompt.messages == [recent, latest]
        assert prompt.estimated_tokens == 30

    def test_latest_always_included(self):
        latest = _msg_with_cost(500)
        budget = PromptBudget(context_limit=200, response_reserve=100)
        prompt = build_prompt([_msg("earlier"), latest], budget, memory_mode=True)
        assert prompt.messages == [latest]

    def test_selection_never_exceeds_limit(self):
        budget = PromptBudget(context_limit=300, response_reserve=100)
        msgs = [_msg_with_cost(c) for c in (40, 15, 90, 25, 60, 30, 12, 45, 20)]

        prompt = build_prompt(msgs, budget, memory_mode=True)

        assert prompt.messages[-1] is msgs[-1]
        assert sum(message_cost(m) for m in prompt.messages) <= budget.prompt_limit
        # Selected messages are a contiguous suffix
        assert prompt.messages == msgs[len(msgs) - len(prompt.messages):]
        # And the next older message would not have fit
        skipped = msgs[len(msgs) - len(prompt.messages) - 1]
        assert prompt.estimated_tokens + message_cost(skipped) > budget.prompt_limit

    def test_exact_fit_is_included(self):
        budget = PromptBudget(context_limit=150, response_reserve=100)
        older = _msg_with_cost(30)
        latest = _msg_with_cost(20)
        prompt = build_prompt([older, latest], budget, memory_mode=True)
        assert prompt.messages == [older, latest]
        assert prompt.estimated_tokens == 50
