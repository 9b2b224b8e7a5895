"""Tests for CommandParser: block extraction, scanning, call forms, values."""

from __future__ import annotations

import pytest

from worldvar.config.models import ParserConfig
from worldvar.domain.commands import (
    AppendCommand,
    ArithmeticCommand,
    ClearCommand,
    InitCommand,
    RemoveCommand,
    SetCommand,
    ToggleCommand,
)
from worldvar.domain.errors import ParseError
from worldvar.domain.types import CommandKind
from worldvar.services.parser import CommandParser, parse_value, split_arguments


@pytest.fixture
def parser() -> CommandParser:
    return CommandParser()


class TestParseValue:
    @pytest.mark.parametrize(
        ("literal", "expected"),
        [
            ("null", None),
            ("true", True),
            ("false", False),
            ("50", 50),
            ("-3", -3),
            ("2.5", 2.5),
            ("'运行中'", "运行中"),
            ('"a\\"b"', 'a"b'),
            ('{"职位":"科员"}', {"职位": "科员"}),
            ("{'k': 'v'}", {"k": "v"}),
            ("[1, 'x']", [1, "x"]),
            ("bare words", "bare words"),
            ("{not json", "{not json"),
        ],
    )
    def test_literals(self, literal: str, expected: object) -> None:
        assert parse_value(literal) == expected

    def test_integral_literal_is_int(self) -> None:
        assert isinstance(parse_value("50"), int)

    def test_unparseable_json_kept_as_text(self) -> None:
        assert parse_value("{a: b}") == "{a: b}"

    @pytest.mark.parametrize("literal", ["9" * 5000, "1" + "0" * 400, "1" * 400 + ".5"])
    def test_out_of_range_number_raises(self, literal: str) -> None:
        with pytest.raises(ParseError):
            parse_value(literal)

    @pytest.mark.parametrize(
        "literal", ["[NaN]", '{"a": Infinity}', "[1e999]", "[1" + "0" * 400 + "]"]
    )
    def test_non_finite_json_kept_as_text(self, literal: str) -> None:
        assert parse_value(literal) == literal


class TestSplitArguments:
    def test_respects_nesting_and_quotes(self) -> None:
        assert split_arguments("'a.b', [1, 2], {'k': 'x,y'}") == [
            "'a.b'",
            "[1, 2]",
            "{'k': 'x,y'}",
        ]

    def test_escaped_quote(self) -> None:
        assert split_arguments(r"'it\'s, fine', 2") == [r"'it\'s, fine'", "2"]

    def test_drops_empty(self) -> None:
        assert split_arguments("'a', ") == ["'a'"]


class TestScenarios:
    def test_namespace_set_unicode(self, parser: CommandParser) -> None:
        batch = parser.parse("_.set('MC.系统.状态', '运行中')")
        assert len(batch.commands) == 1
        cmd = batch.commands[0]
        assert isinstance(cmd, SetCommand)
        assert cmd.path == "MC.系统.状态"
        assert cmd.value == "运行中"

    def test_legacy_add(self, parser: CommandParser) -> None:
        batch = parser.parse("ADD('MC.资源.金币', 50)")
        cmd = batch.commands[0]
        assert isinstance(cmd, ArithmeticCommand)
        assert cmd.kind == CommandKind.ADD
        assert cmd.operand == 50

    def test_assign_builds_child_path(self, parser: CommandParser) -> None:
        batch = parser.parse("_.assign('MC.花名册', '张三', {\"职位\":\"科员\"})")
        cmd = batch.commands[0]
        assert isinstance(cmd, SetCommand)
        assert cmd.path == "MC.花名册.张三"
        assert cmd.value == {"职位": "科员"}

    def test_one_good_one_bad(self, parser: CommandParser) -> None:
        batch = parser.parse("SET('MC.a', 1)\nFROB('MC.b', 2)")
        assert len(batch.commands) == 1
        assert len(batch.diagnostics) == 1
        assert "FROB" in batch.diagnostics[0].reason


class TestCallForms:
    def test_set_with_old_value_uses_last(self, parser: CommandParser) -> None:
        cmd = parser.parse("_.set('MC.hp', 10, 20);").commands[0]
        assert isinstance(cmd, SetCommand)
        assert cmd.value == 20

    def test_add_default_delta(self, parser: CommandParser) -> None:
        cmd = parser.parse("_.add('MC.day')").commands[0]
        assert isinstance(cmd, ArithmeticCommand)
        assert cmd.operand == 1

    def test_add_numeric_text(self, parser: CommandParser) -> None:
        cmd = parser.parse("_.add('MC.day', '3')").commands[0]
        assert isinstance(cmd, ArithmeticCommand)
        assert cmd.operand == 3

    def test_add_non_numeric_is_diagnostic(self, parser: CommandParser) -> None:
        batch = parser.parse("_.add('MC.day', 'lots')")
        assert batch.is_empty
        assert "numeric" in batch.diagnostics[0].reason

    @pytest.mark.parametrize(
        "statement",
        ["_.add('MC.day', 'nan')", "_.add('MC.day', 'inf')", "ADD('MC.day', '-Infinity')"],
    )
    def test_non_finite_operand_is_diagnostic(self, parser: CommandParser, statement: str) -> None:
        batch = parser.parse(statement)
        assert batch.is_empty
        assert "finite" in batch.diagnostics[0].reason

    def test_remove_with_and_without_target(self, parser: CommandParser) -> None:
        batch = parser.parse("_.remove('MC.bag', '剑')\n_.remove('MC.bag')")
        first, second = batch.commands
        assert isinstance(first, RemoveCommand)
        assert first.has_target and first.target == "剑"
        assert isinstance(second, ClearCommand)

    def test_method_case_insensitive(self, parser: CommandParser) -> None:
        assert isinstance(parser.parse("_.SET('a', 1)").commands[0], SetCommand)

    @pytest.mark.parametrize(
        ("statement", "model"),
        [
            ("set('a', 1)", SetCommand),
            ("INIT('a', {})", InitCommand),
            ("append('a', 'x')", AppendCommand),
            ("SUB('a', 1)", ArithmeticCommand),
            ("MUL('a', 2)", ArithmeticCommand),
            ("DIV('a', 2)", ArithmeticCommand),
            ("REMOVE('a', 1)", RemoveCommand),
            ("CLEAR('a')", ClearCommand),
            ("TOGGLE('a')", ToggleCommand),
        ],
    )
    def test_legacy_verbs(self, parser: CommandParser, statement: str, model: type) -> None:
        batch = parser.parse(statement)
        assert isinstance(batch.commands[0], model)

    def test_legacy_remove_without_target(self, parser: CommandParser) -> None:
        cmd = parser.parse("REMOVE('MC.bag')").commands[0]
        assert isinstance(cmd, RemoveCommand)
        assert not cmd.has_target

    @pytest.mark.parametrize(
        "statement",
        [
            "SET('a')",
            "TOGGLE('a', true)",
            "_.assign('a', 'b')",
            "_.set('a')",
            "CLEAR()",
            "SET(5, 1)",
        ],
    )
    def test_arity_and_path_errors(self, parser: CommandParser, statement: str) -> None:
        batch = parser.parse(statement)
        assert batch.is_empty
        assert len(batch.diagnostics) == 1

    def test_unknown_namespace(self, parser: CommandParser) -> None:
        batch = parser.parse("lodash.set('a', 1)")
        assert "namespace" in batch.diagnostics[0].reason

    def test_custom_namespace(self) -> None:
        parser = CommandParser(ParserConfig(namespaces=["_", "mvu"]))
        assert isinstance(parser.parse("mvu.set('a', 1)").commands[0], SetCommand)


class TestScanner:
    def test_multiline_json_statement(self, parser: CommandParser) -> None:
        text = "_.set('MC.档案', {\n  \"名字\": \"李四\",\n  \"标签\": [\"a\", \"b\"]\n});"
        batch = parser.parse(text)
        assert batch.commands[0].value == {"名字": "李四", "标签": ["a", "b"]}
        assert batch.statement_count == 1

    def test_pending_comment(self, parser: CommandParser) -> None:
        batch = parser.parse("// 天亮了\n_.set('世界.时间', '早晨')")
        assert batch.commands[0].comment == "天亮了"

    def test_inline_comment_stripped(self, parser: CommandParser) -> None:
        batch = parser.parse("ADD('MC.gold', 5); // 拾取")
        cmd = batch.commands[0]
        assert cmd.comment == "拾取"
        assert cmd.operand == 5

    def test_pending_comment_wins_over_inline(self, parser: CommandParser) -> None:
        batch = parser.parse("// first\nADD('MC.gold', 5) // second")
        assert batch.commands[0].comment == "first"

    def test_slashes_inside_string_kept(self, parser: CommandParser) -> None:
        batch = parser.parse("_.set('MC.url', 'http://example.com')")
        assert batch.commands[0].value == "http://example.com"

    def test_parens_inside_string(self, parser: CommandParser) -> None:
        batch = parser.parse("_.set('MC.note', 'a) b (c')")
        assert batch.commands[0].value == "a) b (c"

    def test_prose_lines_do_not_swallow_statements(self, parser: CommandParser) -> None:
        text = "The hero walks in\nADD('MC.gold', 1)\nsome trailing prose"
        batch = parser.parse(text)
        assert len(batch.commands) == 1
        assert batch.commands[0].path == "MC.gold"
        assert len(batch.diagnostics) == 2

    def test_stray_closer_is_diagnostic(self, parser: CommandParser) -> None:
        batch = parser.parse("_.set('a', 1])\nADD('b', 1)")
        assert [c.path for c in batch.commands] == ["b"]
        assert len(batch.diagnostics) == 1

    def test_huge_numbers_are_diagnostics(self, parser: CommandParser) -> None:
        text = "\n".join(
            [
                f"SET('MC.a', {'9' * 5000})",
                f"ADD('MC.a', 1{'0' * 400})",
                "SET('MC.b', 1)",
            ]
        )
        batch = parser.parse(text)
        assert [c.path for c in batch.commands] == ["MC.b"]
        assert len(batch.diagnostics) == 2
        assert all("out of range" in d.reason for d in batch.diagnostics)

    def test_counts(self, parser: CommandParser) -> None:
        batch = parser.parse("SET('a', 1)\nBAD(\nSET('b', 2)")
        assert batch.parsed_count == 2
        assert batch.statement_count == 3

    def test_never_raises_on_garbage(self, parser: CommandParser) -> None:
        batch = parser.parse("}}]]) ;; // (( '\n\"unterminated")
        assert batch.is_empty


class TestSentinelBlock:
    def test_last_block_wins(self, parser: CommandParser) -> None:
        text = (
            "<UpdateVariable>SET('a', 1)</UpdateVariable> prose "
            "<updatevariable>SET('b', 2)</updatevariable>"
        )
        batch = parser.parse(text)
        assert [c.path for c in batch.commands] == ["b"]

    def test_prose_outside_block_ignored(self, parser: CommandParser) -> None:
        text = "He said SET('x', 1) loudly.\n<UpdateVariable>\nADD('MC.gold', 5)\n</UpdateVariable>"
        batch = parser.parse(text)
        assert [c.path for c in batch.commands] == ["MC.gold"]
        assert batch.diagnostics == []

    def test_require_tag(self) -> None:
        parser = CommandParser(ParserConfig(require_tag=True))
        assert parser.parse("SET('a', 1)").is_empty
        assert not parser.parse("<UpdateVariable>SET('a', 1)</UpdateVariable>").is_empty

    def test_custom_tag(self) -> None:
        parser = CommandParser(ParserConfig(sentinel_tag="Vars"))
        assert parser.extract_block("x <Vars> SET('a', 1) </Vars>") == "SET('a', 1)"

    def test_extract_block_none(self, parser: CommandParser) -> None:
        assert parser.extract_block("") is None
        assert parser.extract_block("no tags") is None
