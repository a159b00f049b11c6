"""
Tests for the intent classification cascade.
"""

import asyncio

from errors import LLMError, RetryError
from routers.chat_orchestration.agents import build_default_registry
from routers.chat_orchestration.planner import (
    IntentClassifier,
    PlanResult,
    build_planner_prompt,
    summarize_message,
)
from routers.chat_orchestration.usage import TokenUsage

from conftest import FakeLLMClient, assistant, factory_for, text_part, user

REGISTRY = build_default_registry()


def _classify(client, messages, model_config, previous_intent=None):
    classifier = IntentClassifier(REGISTRY, llm_factory=factory_for(client))
    return asyncio.run(classifier.classify(messages, model_config, previous_intent))


class TestKeywordStage:
    def test_keyword_wins_without_model_call(self, model_config):
        client = FakeLLMClient()
        plan = _classify(client, [user("@sql top 10 tables by size")], model_config)
        assert plan.intent == "sql-generation"
        assert plan.stage == "keyword"
        assert client.json_calls == []

    def test_keyword_alone(self, model_config):
        assert _classify(FakeLLMClient(), [user("@visualizer")], model_config).intent == "visualization"

    def test_keyword_beats_heuristics(self, model_config):
        plan = _classify(FakeLLMClient(), [user("@visualizer why is my chart query slow")], model_config)
        assert plan.intent == "visualization"

    def test_keyword_must_be_a_whole_word(self, model_config):
        client = FakeLLMClient(json_replies=[{"intent": "general", "reasoning": "chat"}])
        plan = _classify(client, [user("@sqlfoo hello"), assistant([text_part("hi")]), user("@sqlfoo again")], model_config)
        assert plan.stage == "model"
        assert len(client.json_calls) == 1

    def test_keyword_on_first_message_gets_local_title(self, model_config):
        plan = _classify(FakeLLMClient(), [user("@sql Count Rows In Events")], model_config)
        assert plan.title == "@sql count rows in events"


class TestHeuristicStage:
    def test_optimization(self, model_config):
        """Scenario: 'optimize this slow query' routes to optimization without a model call."""
        client = FakeLLMClient()
        plan = _classify(client, [user("optimize this slow query: SELECT * FROM events")], model_config)
        assert plan.intent == "optimization"
        assert plan.stage == "heuristic"
        assert client.json_calls == []

    def test_visualization(self, model_config):
        plan = _classify(FakeLLMClient(), [user("Plot daily signups as a bar chart")], model_config)
        assert plan.intent == "visualization"

    def test_registration_order_breaks_ties(self, model_config):
        plan = _classify(FakeLLMClient(), [user("the line chart query is slow")], model_config)
        assert plan.intent == "optimization"


class TestModelStage:
    def test_valid_classification(self, model_config):
        client = FakeLLMClient(json_replies=[(
            '{"intent": "sql-generation", "reasoning": "asks for a query", "title": "Top customers"}',
            {"prompt_tokens": 120, "completion_tokens": 20, "total_tokens": 140},
        )])
        plan = _classify(client, [user("which customers spent the most last month?")], model_config)
        assert plan.intent == "sql-generation"
        assert plan.reasoning == "asks for a query"
        assert plan.title == "Top customers"
        assert plan.usage == TokenUsage(120, 20, 140)

    def test_unknown_intent_falls_back(self, model_config, caplog):
        client = FakeLLMClient(json_replies=[{"intent": "poetry", "reasoning": "?"}])
        plan = _classify(client, [user("write me a poem about tables")], model_config)
        assert plan.intent == "general"
        assert plan.reasoning.startswith("Classification failed")
        assert plan.stage == "fallback"
        assert "Intent classification failed" in caplog.text

    def test_transport_failure_falls_back(self, model_config):
        client = FakeLLMClient(json_replies=[RetryError("Failed after 3 attempts", errors=[LLMError("down")])])
        plan = _classify(client, [user("hello there")], model_config)
        assert plan.intent == "general"
        assert "Failed after 3 attempts" in plan.reasoning
        assert plan.title == "hello there"

    def test_empty_output_falls_back_and_keeps_usage(self, model_config):
        client = FakeLLMClient(json_replies=[("", {"inputTokens": 50, "outputTokens": 0, "totalTokens": 50})])
        plan = _classify(client, [user("hello")], model_config)
        assert plan.intent == "general"
        assert plan.usage == TokenUsage(50, 0, 50)

    def test_missing_title_derived_on_first_message(self, model_config):
        client = FakeLLMClient(json_replies=[{"intent": "general", "reasoning": "greeting"}])
        plan = _classify(client, [user("Hello, what can you do for me?")], model_config)
        assert plan.title == "hello, what can you do for me?"

    def test_no_title_after_first_message(self, model_config):
        client = FakeLLMClient(json_replies=[{"intent": "general", "reasoning": "chat", "title": "Ignored"}])
        messages = [user("hello"), assistant([text_part("Hi!")]), user("what is a MergeTree?")]
        plan = _classify(client, messages, model_config)
        assert plan.title is None

    def test_previous_intent_in_prompt(self, model_config):
        client = FakeLLMClient(json_replies=[{"intent": "visualization", "reasoning": "follow-up"}])
        messages = [user("sales per day"), assistant([text_part("Here")]), user("now per week")]
        _classify(client, messages, model_config, previous_intent="visualization")
        prompt = client.json_calls[0][0]["content"]
        assert "previous turn was handled by: visualization" in prompt


class TestNoUserMessage:
    def test_fallback(self, model_config):
        client = FakeLLMClient()
        plan = _classify(client, [assistant([text_part("Hi")])], model_config)
        assert plan == PlanResult(intent="general", reasoning="No user message found", stage="fallback")
        assert client.json_calls == []


class TestPlannerPrompt:
    def test_lists_every_agent_and_asks_for_title(self):
        prompt = build_planner_prompt(REGISTRY, [user("hi")], title_required=True)
        for agent_id in REGISTRY.ids():
            assert f"- {agent_id}:" in prompt
        assert "title is required" in prompt

    def test_history_window_and_compaction(self):
        long_sql = "```sql\nSELECT " + ", ".join(f"c{i}" for i in range(400)) + "\n```"
        messages = [user(f"message {i}") for i in range(10)] + [assistant([text_part(f"Query:\n{long_sql}")])]
        prompt = build_planner_prompt(REGISTRY, messages, title_required=False)
        assert "message 4" not in prompt
        assert "message 5" in prompt
        assert "[SQL omitted]" in prompt
        assert "c399" not in prompt

    def test_summary_truncates(self):
        line = summarize_message(user("x" * 600), max_chars=500)
        assert line == "user: " + "x" * 500 + "..."


class TestPlanOutput:
    def test_to_output_omits_empty_fields(self):
        assert PlanResult(intent="general").to_output() == {"intent": "general"}

    def test_to_output_full(self):
        output = PlanResult("optimization", "slow", "Speed up", TokenUsage(1, 2, 3)).to_output()
        assert output["intent"] == "optimization"
        assert output["title"] == "Speed up"
        assert output["usage"]["totalTokens"] == 3
        assert output["reasoning"] == "slow"
