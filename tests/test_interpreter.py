"""Tests for the rule interpreter."""

import asyncio
import pytest

from scriptflow.core.command_registry import CommandRegistry
from scriptflow.core.interpreter import (
    ProgramExecutor,
    evaluate_condition,
    execute,
    matches_event,
    matches_schedule,
    resolve_placeholders,
    rule_summaries,
    wait_seconds,
)
from scriptflow.core.logging import get_logging_context
from scriptflow.core.parser import parse_source
from scriptflow.models.script import Condition, RunStatusEnum


def first_rule(code):
    return parse_source(code).rules[0]


class TestPlaceholders:
    """Test cases for {{key}} substitution."""

    def test_substitutes_context_values(self):
        assert resolve_placeholders("Hi {{username}}!", {"username": "alice"}) == "Hi alice!"

    def test_missing_key_becomes_empty(self):
        assert resolve_placeholders("Hi {{username}}!", {}) == "Hi !"

    def test_non_string_values(self):
        assert resolve_placeholders("{{amount}} dollars", {"amount": 25}) == "25 dollars"


class TestConditions:
    """Test cases for trigger guards."""

    @pytest.mark.parametrize("operator,right,value,expected", [
        (">", "100", "150", True),
        (">", "100", "50", False),
        ("<", "10", 5, True),
        (">=", "10", "10", True),
        ("<=", "10", "11", False),
        ("==", "10", "10.0", True),
        ("==", "next scene", "next scene", True),
        ("!=", "next scene", "start recording", True),
        ("contains", "clip that", "Please CLIP THAT now", True),
        ("contains", "clip that", "nothing here", False),
    ])
    def test_operators(self, operator, right, value, expected):
        condition = Condition(left="value", operator=operator, right=right)
        assert evaluate_condition(condition, {"value": value}) is expected

    def test_missing_key_never_matches(self):
        condition = Condition(left="donation", operator="!=", right="0")
        assert evaluate_condition(condition, {}) is False

    def test_ordering_needs_numbers(self):
        condition = Condition(left="donation", operator=">", right="100")
        assert evaluate_condition(condition, {"donation": "lots"}) is False

    def test_no_condition_always_matches(self):
        assert evaluate_condition(None, {}) is True

    def test_matches_event(self):
        trigger = first_rule("when donation > 100 then playSound('x') end").trigger

        assert matches_event(trigger, "donation", {"donation": 150})
        assert not matches_event(trigger, "donation", {"donation": 50})
        assert not matches_event(trigger, "follower", {"donation": 150})

    def test_matches_schedule(self):
        trigger = first_rule("every 15 minutes do speak('x') end").trigger

        assert matches_schedule(trigger, "15 minutes")
        assert matches_schedule(trigger, " 15   minutes ")
        assert not matches_schedule(trigger, "1 hour")

    @pytest.mark.parametrize("args,expected", [([2], 2.0), (["3"], 3.0), ([], 1.0), (["soon"], 1.0), ([-1], 1.0)])
    def test_wait_seconds(self, args, expected):
        assert wait_seconds(args) == expected


class TestProgramExecutor:
    """Test cases for running rules."""

    @pytest.mark.asyncio
    async def test_placeholders_are_resolved_before_dispatch(self, program_executor, recorder):
        rule = first_rule("on follower do speak('Hi {{username}}') end")

        result = await program_executor.execute(rule, {"username": "alice"})

        assert result.status == RunStatusEnum.COMPLETED
        assert recorder.calls == [("speak", ("Hi alice",))]

    @pytest.mark.asyncio
    async def test_actions_run_in_source_order(self, program_executor, recorder):
        rule = first_rule("on follower do showAlert('a') speak('b') playSound('c') end")

        result = await program_executor.execute(rule)

        assert recorder.commands == ["showAlert", "speak", "playSound"]
        assert result.executed_actions == ["showAlert", "speak", "playSound"]

    @pytest.mark.asyncio
    async def test_unknown_command_is_skipped(self, program_executor, recorder):
        rule = first_rule("on follower do speak('a') tweet('b') playSound('c') end")

        result = await program_executor.execute(rule)

        assert result.status == RunStatusEnum.COMPLETED
        assert recorder.commands == ["speak", "playSound"]
        assert len(result.warnings) == 1
        assert result.warnings[0]["context"]["command"] == "tweet"
        assert result.warnings[0]["context"]["action_index"] == 1
        assert program_executor.unknown_command_count == 1

    @pytest.mark.asyncio
    async def test_handler_error_aborts_run(self, registry, recorder, fake_sleep):
        def explode(*args):
            raise RuntimeError("studio offline")

        registry.register("explode", explode)
        executor = ProgramExecutor(registry, sleep=fake_sleep)
        rule = first_rule("on follower do speak('a') explode() playSound('never') end")

        result = await executor.execute(rule, script_id="script-1", rule_index=2)

        assert result.status == RunStatusEnum.FAILED
        assert recorder.commands == ["speak"]
        assert result.executed_actions == ["speak"]
        assert result.error["exception_type"] == "RuntimeActionError"
        assert "studio offline" in result.error["message"]
        assert result.error["context"]["command"] == "explode"
        assert result.script_id == "script-1"
        assert result.rule_index == 2
        assert result.finished_at is not None

    @pytest.mark.asyncio
    async def test_wait_uses_requested_seconds(self, program_executor, fake_sleep):
        rule = first_rule("on follower do wait(2) speak('after') wait() end")

        result = await program_executor.execute(rule)

        assert fake_sleep.delays == [2, 1.0]
        assert result.executed_actions == ["wait", "speak", "wait"]

    @pytest.mark.asyncio
    async def test_wait_only_suspends_its_own_run(self):
        """A run started during another run's wait finishes first."""
        order = []
        registry = CommandRegistry()
        registry.register("mark", lambda label: order.append(label))
        executor = ProgramExecutor(registry)

        slow = first_rule("on a do mark('slow-start') wait(0.2) mark('slow-end') end")
        fast = first_rule("on b do mark('fast') end")

        slow_task = asyncio.create_task(executor.execute(slow))
        await asyncio.sleep(0.05)
        fast_result = await executor.execute(fast)
        assert order == ["slow-start", "fast"]

        slow_result = await slow_task
        assert order == ["slow-start", "fast", "slow-end"]
        assert fast_result.status == slow_result.status == RunStatusEnum.COMPLETED

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_concurrent_run(self, fake_sleep):
        registry = CommandRegistry()
        seen = []

        def fail():
            raise ValueError("boom")

        registry.register("fail", fail)
        registry.register("note", seen.append)
        executor = ProgramExecutor(registry, sleep=fake_sleep)

        failing = first_rule("on x do wait(1) fail() note('unreachable') end")
        healthy = first_rule("on x do wait(1) note('one') wait(1) note('two') end")

        results = await asyncio.gather(executor.execute(failing), executor.execute(healthy))

        assert [r.status for r in results] == [RunStatusEnum.FAILED, RunStatusEnum.COMPLETED]
        assert seen == ["one", "two"]

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self, fake_sleep):
        registry = CommandRegistry()
        seen = []

        async def speak(text):
            await asyncio.sleep(0)
            seen.append(text)

        registry.register("speak", speak)
        result = await ProgramExecutor(registry, sleep=fake_sleep).execute(first_rule("on x do speak('hi') end"))

        assert seen == ["hi"]
        assert result.status == RunStatusEnum.COMPLETED

    @pytest.mark.asyncio
    async def test_handlers_log_under_their_own_run(self, fake_sleep):
        """Concurrent runs each carry their own run id in the logging context."""
        registry = CommandRegistry()
        seen = []
        registry.register("note", lambda label: seen.append((label, get_logging_context())))
        executor = ProgramExecutor(registry, sleep=fake_sleep)

        results = await asyncio.gather(
            executor.execute(first_rule("on x do wait(1) note('a') end"), script_id="script-a"),
            executor.execute(first_rule("on x do note('b') end"), script_id="script-b"),
        )

        contexts = dict(seen)
        assert contexts["a"] == {"script_id": "script-a", "run_id": results[0].run_id}
        assert contexts["b"] == {"script_id": "script-b", "run_id": results[1].run_id}
        assert get_logging_context() == {}

    @pytest.mark.asyncio
    async def test_registry_override(self, program_executor):
        other = CommandRegistry()
        seen = []
        other.register("speak", seen.append)

        await program_executor.execute(first_rule("on x do speak('x') end"), registry=other)

        assert seen == ["x"]

    @pytest.mark.asyncio
    async def test_module_level_execute(self, registry, recorder):
        result = await execute(first_rule("on x do speak('{{who}}') end"), {"who": "bob"}, registry)

        assert result.status == RunStatusEnum.COMPLETED
        assert recorder.calls == [("speak", ("bob",))]


def test_rule_summaries():
    rules = parse_source("on follower do speak('a') end\nevery 1 hour do nextScene() end").rules
    summaries = rule_summaries(rules)

    assert [s["index"] for s in summaries] == [0, 1]
    assert summaries[0]["trigger"]["kind"] == "event"
    assert summaries[1]["trigger"]["schedule_expr"] == "1 hour"
    assert summaries[0]["actions"] == ["speak"]
