"""Tests for the bounded tool-calling loop."""

import pytest

from conftest import ScriptedModel, final_turn, tool_turn


class Recorder:
    def __init__(self):
        self.events = []

    async def __call__(self, event_type, data):
        self.events.append((event_type.value, data))

    @property
    def types(self):
        return [t for t, _ in self.events]


async def _ok(call):
    return {"ok": True, "tool": call.name}


@pytest.mark.asyncio
async def test_final_answer_takes_one_model_call():
    from agentic.loop import AgenticLoop

    model = ScriptedModel([final_turn("Try Sète for seafood.")])
    result = await AgenticLoop(model, _ok).run("Where should I eat?")

    assert model.invocations == 1
    assert result.response == "Try Sète for seafood."
    assert result.iterations == 1
    assert not result.exhausted
    assert result.tool_calls == []


@pytest.mark.asyncio
async def test_loop_stops_after_max_iterations():
    """A model that always asks for tools is cut off after exactly five calls."""
    from agentic.loop import MAX_ITERATIONS_RESPONSE, AgenticLoop

    model = ScriptedModel(lambda i: tool_turn(("analyze_route", {})))
    result = await AgenticLoop(model, _ok, max_iterations=5).run("Plan everything")

    assert model.invocations == 5
    assert result.exhausted
    assert result.iterations == 5
    assert result.response == MAX_ITERATIONS_RESPONSE
    assert len(result.tool_calls) == 5


@pytest.mark.asyncio
async def test_tool_results_fed_back_in_order():
    from agentic.loop import AgenticLoop

    model = ScriptedModel(
        [
            tool_turn(("search_cities", {"criteria": "wine"}), ("get_city_highlights", {"city_name": "Uzès"})),
            final_turn("Done"),
        ]
    )
    result = await AgenticLoop(model, _ok).run("Find wine towns")

    second_call = model.calls[1]
    tool_messages = [m for m in second_call if m["role"] == "tool"]
    assert [m["tool_call_id"] for m in tool_messages] == ["call_0", "call_1"]
    assistant = [m for m in second_call if m["role"] == "assistant"][-1]
    assert [c["function"]["name"] for c in assistant["tool_calls"]] == ["search_cities", "get_city_highlights"]
    assert [c["name"] for c in result.tool_calls] == ["search_cities", "get_city_highlights"]
    assert result.iterations == 2


@pytest.mark.asyncio
async def test_read_only_batch_events_start_all_then_complete_in_order():
    from agentic.loop import AgenticLoop

    emit = Recorder()
    model = ScriptedModel(
        [
            tool_turn(("search_cities", {"criteria": "art"}), ("analyze_route", {}), text="Let me look."),
            final_turn("Here you go"),
        ]
    )
    await AgenticLoop(model, _ok, emit).run("art?")

    assert emit.types == ["text", "tool_start", "tool_start", "tool_complete", "tool_complete"]
    assert [d["id"] for t, d in emit.events if t == "tool_complete"] == ["call_0", "call_1"]


@pytest.mark.asyncio
async def test_route_changing_batch_runs_sequentially():
    from agentic.loop import AgenticLoop

    order = []

    async def execute(call):
        order.append(call.name)
        return {"success": True}

    emit = Recorder()
    model = ScriptedModel(
        [
            tool_turn(("add_city_to_route", {"city_name": "Sète"}), ("remove_city_from_route", {"city_name": "Nice"})),
            final_turn("Swapped"),
        ]
    )
    await AgenticLoop(model, execute, emit).run("swap")

    assert order == ["add_city_to_route", "remove_city_from_route"]
    assert emit.types == ["tool_start", "tool_complete", "tool_start", "tool_complete"]


@pytest.mark.asyncio
async def test_failing_executor_becomes_tool_error():
    from agentic.loop import AgenticLoop

    async def execute(call):
        raise RuntimeError("database gone")

    emit = Recorder()
    model = ScriptedModel([tool_turn(("analyze_route", {})), final_turn("Sorry about that")])
    result = await AgenticLoop(model, execute, emit).run("check route")

    assert result.response == "Sorry about that"
    assert result.tool_calls[0]["result"]["error_kind"] == "tool_execution_failed"
    complete = [d for t, d in emit.events if t == "tool_complete"][0]
    assert complete["error"] is True


@pytest.mark.asyncio
async def test_unexpected_stop_reason_is_reported():
    from agentic.loop import ANOMALOUS_STOP_RESPONSE, AgenticLoop
    from packages.shared.llm_provider import ModelTurn, StopReason

    model = ScriptedModel([ModelTurn(text="partial", tool_calls=(), stop_reason=StopReason.MAX_TOKENS)])
    result = await AgenticLoop(model, _ok).run("hi")

    assert result.response == ANOMALOUS_STOP_RESPONSE
    assert result.failure == "anomalous_stop"


@pytest.mark.asyncio
async def test_generation_failure_uses_fallback():
    from agentic.loop import FALLBACK_RESPONSES, AgenticLoop
    from packages.shared.errors import GenerationFailed

    def script(i):
        raise GenerationFailed("provider down")

    result = await AgenticLoop(ScriptedModel(script), _ok).run("hi")
    assert result.response == FALLBACK_RESPONSES["api_error"]
    assert result.failure == "generation_failed"


@pytest.mark.asyncio
async def test_history_is_windowed_and_system_prompt_first():
    from agentic.loop import AgenticLoop
    from agentic.turns import ConversationTurn

    history = [ConversationTurn.user(f"message {i}") for i in range(15)]
    model = ScriptedModel([final_turn("ok")])
    await AgenticLoop(model, _ok, history_window=10).run("latest", history, system_prompt="You are Voyager")

    messages = model.calls[0]
    assert messages[0] == {"role": "system", "content": "You are Voyager"}
    assert len(messages) == 12
    assert messages[1]["content"] == "message 5"
    assert messages[-1]["content"] == "latest"


def test_rejects_zero_iterations():
    from agentic.loop import AgenticLoop

    with pytest.raises(ValueError):
        AgenticLoop(ScriptedModel([]), _ok, max_iterations=0)
