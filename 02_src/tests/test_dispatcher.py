"""Tests for ToolInvocationDispatcher."""

import asyncio

import pytest

from agent_core.errors import SkillError, ToolError
from agent_core.models import ErrorInfo, SkillResult, ToolResult
from agent_core.tools import InvocationCall, ToolInvocationDispatcher


class TestInvokeTool:
    """Tests for tool invocation."""

    @pytest.mark.asyncio
    async def test_invoke_success(self, dispatcher, registries, echo_tool, recorded):
        """Test that a successful tool call returns its result and emits events."""
        registries[0].register(echo_tool)

        result = await dispatcher.invoke("echo", {"x": 1})

        assert result.success
        assert result.data == {"x": 1}
        assert [e.type for e in recorded] == ["tool:invoking", "tool:completed"]
        assert recorded[0].payload["tool"] == "echo"
        assert recorded[0].metadata.execution_id == recorded[1].metadata.execution_id

    @pytest.mark.asyncio
    async def test_lookup_by_id(self, dispatcher, registries, echo_tool):
        """Test that tools are found by id as well as by name."""
        registries[0].register(echo_tool)

        result = await dispatcher.invoke("tool-echo", "hi")

        assert result.data == "hi"

    @pytest.mark.asyncio
    async def test_fresh_context_per_call(self, dispatcher, registries, echo_tool):
        """Test that every call gets its own execution id."""
        registries[0].register(echo_tool)

        await dispatcher.invoke("echo", 1)
        await dispatcher.invoke("echo", 2)

        contexts = [ctx for _, ctx in echo_tool.calls]
        assert contexts[0].execution_id != contexts[1].execution_id
        assert contexts[0].agent == "agent-test"

    @pytest.mark.asyncio
    async def test_missing_tool_raises(self, dispatcher, recorded):
        """Test that a missing tool raises a recoverable ToolError."""
        with pytest.raises(ToolError) as exc_info:
            await dispatcher.invoke("nope")

        assert exc_info.value.code == "TOOL_NOT_FOUND"
        assert exc_info.value.recoverable
        assert [e.type for e in recorded] == ["tool:failed"]

    @pytest.mark.asyncio
    async def test_raising_tool_wrapped(self, dispatcher, registries, make_tool, recorded):
        """Test that a raising run() becomes a ToolError chained to the cause."""

        def boom(input):
            raise RuntimeError("disk full")

        registries[0].register(make_tool("broken", boom))

        with pytest.raises(ToolError) as exc_info:
            await dispatcher.invoke("broken")

        assert exc_info.value.code == "TOOL_EXECUTION_FAILED"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert recorded[-1].type == "tool:failed"
        assert dispatcher.history[-1].success is False
        assert dispatcher.history[-1].error == "disk full"

    @pytest.mark.asyncio
    async def test_unsuccessful_result_returned(self, dispatcher, registries, make_tool, recorded):
        """Test that success=False is returned, not raised."""
        failing = make_tool(
            "failing",
            lambda input: ToolResult(success=False, error=ErrorInfo(code="BAD", message="bad input")),
        )
        registries[0].register(failing)

        result = await dispatcher.invoke("failing")

        assert not result.success
        assert result.error.code == "BAD"
        assert recorded[-1].type == "tool:failed"
        assert recorded[-1].payload["error"]["message"] == "bad input"

    @pytest.mark.asyncio
    async def test_plain_values_normalized(self, dispatcher, registries, make_tool):
        """Test that dict and raw return values become ToolResults."""
        registries[0].register(make_tool("dict", lambda input: {"success": False, "error": "nope"}))
        registries[0].register(make_tool("raw", lambda input: 42))

        as_dict = await dispatcher.invoke("dict")
        raw = await dispatcher.invoke("raw")

        assert not as_dict.success
        assert as_dict.error.message == "nope"
        assert raw.success and raw.data == 42


class TestInvokeSkill:
    """Tests for skill invocation."""

    @pytest.mark.asyncio
    async def test_invoke_skill(self, dispatcher, registries, echo_skill, recorded):
        """Test a successful skill execution."""
        registries[1].register(echo_skill)

        result = await dispatcher.invoke("echo_skill", {"q": "x"}, kind="skill", session_id="s1")

        assert isinstance(result, SkillResult)
        assert result.data == {"q": "x"}
        assert [e.type for e in recorded] == ["skill:executing", "skill:completed"]
        assert recorded[0].metadata.session_id == "s1"

        _, context = echo_skill.calls[0]
        assert context.input == {"q": "x"}
        assert context.agent_id == "agent-test"
        assert context.session_id == "s1"

    @pytest.mark.asyncio
    async def test_missing_skill_raises(self, dispatcher):
        """Test that a missing skill raises SkillError."""
        with pytest.raises(SkillError) as exc_info:
            await dispatcher.invoke("ghost", kind="skill")

        assert exc_info.value.code == "SKILL_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_skill_failure_result(self, dispatcher, registries, make_skill, recorded):
        """Test that a failed SkillResult emits skill:failed."""
        registries[1].register(
            make_skill("sad", lambda input: SkillResult(success=False, error={"code": "X", "message": "no"}))
        )

        result = await dispatcher.invoke("sad", kind="skill")

        assert not result.success
        assert isinstance(result.error, ErrorInfo)
        assert recorded[-1].type == "skill:failed"


class TestInvokeMany:
    """Tests for concurrent invocation."""

    @pytest.mark.asyncio
    async def test_preserves_length_and_order(self, dispatcher, registries, make_tool):
        """Test that outcomes match calls one-to-one, in order."""

        async def slow(input):
            await asyncio.sleep(0.01)
            return ToolResult(success=True, data="slow")

        registries[0].register(make_tool("slow", slow))
        registries[0].register(make_tool("fast", lambda input: ToolResult(success=True, data="fast")))

        outcomes = await dispatcher.invoke_many(
            [InvocationCall("slow"), InvocationCall("fast"), InvocationCall("slow")]
        )

        assert [o.result.data for o in outcomes] == ["slow", "fast", "slow"]
        assert all(o.ok for o in outcomes)

    @pytest.mark.asyncio
    async def test_failure_does_not_block_others(self, dispatcher, registries, echo_tool):
        """Test that one failing call leaves the others intact."""
        registries[0].register(echo_tool)

        outcomes = await dispatcher.invoke_many(
            [InvocationCall("echo", {"n": 1}), InvocationCall("missing"), InvocationCall("echo", {"n": 3})]
        )

        assert len(outcomes) == 3
        assert outcomes[0].ok and outcomes[2].ok
        assert isinstance(outcomes[1].error, ToolError)
        assert outcomes[1].result is None

    @pytest.mark.asyncio
    async def test_runs_concurrently(self, dispatcher, registries, make_tool):
        """Test that calls overlap instead of running one after another."""
        active = 0
        peak = 0

        async def tracked(input):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return ToolResult(success=True)

        registries[0].register(make_tool("tracked", tracked))

        await dispatcher.invoke_many([InvocationCall("tracked") for _ in range(3)])

        assert peak == 3


class TestHistory:
    """Tests for the invocation history."""

    @pytest.mark.asyncio
    async def test_history_records_calls(self, dispatcher, registries, echo_tool):
        """Test that each invocation lands in history."""
        registries[0].register(echo_tool)

        await dispatcher.invoke("echo", "a")

        record = dispatcher.history[0]
        assert record.kind == "tool"
        assert record.tool == "echo"
        assert record.input == "a"
        assert record.output == "a"
        assert record.success
        assert record.duration == record.end_time - record.start_time

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, event_bus, registries, echo_tool):
        """Test that history keeps only the newest entries."""
        tools, skills = registries
        tools.register(echo_tool)
        dispatcher = ToolInvocationDispatcher(event_bus, "agent-test", tools, skills, history_limit=2)

        for i in range(5):
            await dispatcher.invoke("echo", i)

        assert [r.input for r in dispatcher.history] == [3, 4]

    @pytest.mark.asyncio
    async def test_clear_history(self, dispatcher, registries, echo_tool):
        """Test that clear_history() empties history."""
        registries[0].register(echo_tool)
        await dispatcher.invoke("echo", 1)

        dispatcher.clear_history()

        assert dispatcher.history == []
