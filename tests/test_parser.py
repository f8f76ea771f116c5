"""Tests for the script parser."""

import pytest

from scriptflow.core.exceptions import ScriptSyntaxError
from scriptflow.core.lexer import tokenize
from scriptflow.core.parser import parse, parse_source
from scriptflow.models.script import TriggerKind


class TestRuleBlocks:
    """Test cases for the three block forms."""

    def test_when_block_with_comparison(self):
        program = parse_source("when donation > 100 then playSound('epic') end")

        assert len(program.rules) == 1
        rule = program.rules[0]
        assert rule.trigger.kind == TriggerKind.EVENT
        assert rule.trigger.event_name == "donation"
        assert rule.trigger.condition.left == "donation"
        assert rule.trigger.condition.operator == ">"
        assert rule.trigger.condition.right == "100"
        assert [(a.command, a.args) for a in rule.actions] == [("playSound", ["epic"])]

    def test_when_block_without_comparison(self):
        program = parse_source("when raid then speak('raid!') end")
        assert program.rules[0].trigger.condition is None

    def test_when_block_with_contains(self):
        program = parse_source("when chat contains 'clip that' then createClip(30) end")
        condition = program.rules[0].trigger.condition
        assert condition.operator == "contains"
        assert condition.right == "clip that"

    def test_on_block_preserves_argument_order_and_types(self):
        program = parse_source("on follower do showAlert('Hi','msg',5) end")

        rule = program.rules[0]
        assert rule.trigger.kind == TriggerKind.EVENT
        assert rule.trigger.event_name == "follower"
        assert rule.trigger.condition is None
        assert len(rule.actions) == 1
        assert rule.actions[0].args == ["Hi", "msg", 5]
        assert [type(a) for a in rule.actions[0].args] == [str, str, int]

    def test_on_block_with_phrase(self):
        """A quoted phrase after the event name becomes an equality guard."""
        program = parse_source("on voice-command 'next scene' do nextScene() end")

        trigger = program.rules[0].trigger
        assert trigger.event_name == "voice-command"
        assert trigger.condition.left == "voice-command"
        assert trigger.condition.operator == "=="
        assert trigger.condition.right == "next scene"

    def test_every_block(self):
        program = parse_source("every 1 hour do nextScene() end")

        trigger = program.rules[0].trigger
        assert trigger.kind == TriggerKind.SCHEDULE
        assert trigger.schedule_expr == "1 hour"
        assert trigger.event_name is None

    def test_every_block_with_minutes(self):
        program = parse_source("every 15 minutes do speak('hi') end")
        assert program.rules[0].trigger.schedule_expr == "15 minutes"

    def test_float_argument(self):
        program = parse_source("on tick do wait(0.5) end")
        assert program.rules[0].actions[0].args == [0.5]

    def test_actions_keep_source_order(self):
        code = """
        on follower do
          speak('one')
          playSound('two')
          showAlert('three')
        end
        """
        actions = parse_source(code).rules[0].actions
        assert [a.command for a in actions] == ["speak", "playSound", "showAlert"]

    def test_empty_action_list(self):
        program = parse_source("on follower do end")
        assert program.rules[0].actions == []


class TestProgramParsing:
    """Test cases for multi-rule programs and top-level recovery."""

    def test_multiple_rules(self):
        code = """
        on follower do speak('thanks') end
        when donation > 5 then playSound('coins') end
        every 10 minutes do nextScene() end
        """
        program = parse_source(code)

        assert [r.trigger.kind for r in program.rules] == [
            TriggerKind.EVENT, TriggerKind.EVENT, TriggerKind.SCHEDULE
        ]

    def test_stray_top_level_tokens_are_ignored(self):
        program = parse_source("hello 42 'loose' on follower do speak('hi') end trailing")
        assert len(program.rules) == 1

    def test_empty_program(self):
        assert parse_source("").rules == []
        assert parse([]).rules == []

    def test_parse_accepts_token_list(self):
        program = parse(tokenize("on follower do speak('x') end"))
        assert program.rules[0].actions[0].command == "speak"


class TestSyntaxErrors:
    """Test cases for structural violations."""

    def test_missing_event_name_after_on(self):
        with pytest.raises(ScriptSyntaxError) as exc_info:
            parse_source("on do speak('x') end")
        assert "event name" in exc_info.value.message
        assert exc_info.value.line == 1

    def test_missing_end(self):
        with pytest.raises(ScriptSyntaxError) as exc_info:
            parse_source("on follower do\n  speak('x')")
        assert "Missing 'end'" in exc_info.value.message
        assert exc_info.value.line == 2

    def test_missing_then(self):
        with pytest.raises(ScriptSyntaxError):
            parse_source("when donation > 5 playSound('x') end")

    def test_missing_comparison_value(self):
        with pytest.raises(ScriptSyntaxError):
            parse_source("when donation > then playSound('x') end")

    def test_unclosed_argument_list(self):
        with pytest.raises(ScriptSyntaxError) as exc_info:
            parse_source("on follower do speak('x' end")
        assert "')'" in exc_info.value.message

    def test_bad_argument(self):
        with pytest.raises(ScriptSyntaxError):
            parse_source("on follower do speak(username) end")

    def test_every_requires_unit(self):
        with pytest.raises(ScriptSyntaxError):
            parse_source("every 5 do speak('x') end")

    def test_error_position_points_at_offending_token(self):
        with pytest.raises(ScriptSyntaxError) as exc_info:
            parse_source("on follower do\n  speak('a')\n  42\nend")
        assert exc_info.value.line == 3
        assert exc_info.value.details["line"] == 3
