# tests/arch/a64/test_operands.py
"""
a64_core_tracer.arch.a64.operandsモジュールの単体テスト。
"""
import pytest

from a64_core_tracer.arch.a64.operands import (
    AddressOperand, ImmediateOperand, RegisterOperand, parse_operand_text, tokenize_operands,
)
from a64_core_tracer.core.errors import AsmSyntaxError

# @intent:test_suite オペランドの字句解析、構文解析、式の評価を検証します。


class TestTokenize:
    # @intent:test_case_top_level_commas 角括弧内のカンマではオペランドを分割しないことを検証します。
    def test_brackets_keep_commas(self):
        groups = tokenize_operands("x1, [x2, #8]!")
        assert len(groups) == 2
        assert [t.text for t in groups[1]] == ["[", "x2", ",", "#", "8", "]", "!"]

    def test_offsets(self):
        groups = tokenize_operands("x1, x2", offset=10)
        assert (groups[0][0].start, groups[0][0].end) == (10, 12)
        assert (groups[1][0].start, groups[1][0].end) == (14, 16)

    def test_empty(self):
        assert tokenize_operands("   ") == []

    def test_unexpected_character(self):
        with pytest.raises(AsmSyntaxError, match="unexpected character '@'") as info:
            tokenize_operands("x0, @")
        assert (info.value.start, info.value.end) == (4, 5)


class TestParseOperands:
    def test_registers(self):
        operands = parse_operand_text("x0, w1, sp, xzr")
        assert all(isinstance(op, RegisterOperand) for op in operands)
        assert [(op.number, op.wide) for op in operands] == [(0, True), (1, False), (28, True), (31, True)]

    # @intent:test_case_shift_attaches シフト/拡張キーワードが直前のレジスタに付加されることを検証します。
    def test_shift_attaches_to_register(self):
        operands = parse_operand_text("x0, x1, lsl #3")
        assert len(operands) == 2
        assert operands[1].shift == "lsl"
        assert operands[1].shift_amount.evaluate() == 3

    def test_extend_without_amount(self):
        operands = parse_operand_text("x0, w1, uxtw")
        assert operands[1].shift == "uxtw"
        assert operands[1].shift_amount is None

    def test_shift_without_register(self):
        with pytest.raises(AsmSyntaxError, match="bad register for shift"):
            parse_operand_text("lsl #3")

    def test_immediate(self):
        (operand,) = parse_operand_text("#0x10")
        assert isinstance(operand, ImmediateOperand)
        assert operand.expr.evaluate() == 16

    # @intent:test_case_immediate_shift 即値には lsl だけが付加でき、その他のシフトは拒否されることを検証します。
    def test_lsl_attaches_to_immediate(self):
        (operand,) = parse_operand_text("#1, lsl #12")
        assert isinstance(operand, ImmediateOperand)
        assert operand.shift == "lsl"
        assert operand.shift_amount.evaluate() == 12
        with pytest.raises(AsmSyntaxError, match="bad register for shift"):
            parse_operand_text("#1, lsr #12")
        with pytest.raises(AsmSyntaxError, match="bad register for shift"):
            parse_operand_text("#1, lsl #12, lsl #12")

    # @intent:test_case_address_forms オフセット、プリインデックス、ポストインデックスの各アドレス形式を検証します。
    def test_address_with_offset(self):
        (operand,) = parse_operand_text("[x1, #8]")
        assert isinstance(operand, AddressOperand)
        assert not operand.pre_index
        assert operand.post_index is None
        assert operand.base.name == "x1"
        assert operand.parts[1].expr.evaluate() == 8

    def test_pre_index(self):
        (operand,) = parse_operand_text("[x1, #-16]!")
        assert operand.pre_index
        assert operand.parts[1].expr.evaluate() == -16

    def test_post_index(self):
        operands = parse_operand_text("x0, [x1], #8")
        assert len(operands) == 2
        assert operands[1].post_index.evaluate() == 8

    def test_register_index(self):
        (operand,) = parse_operand_text("[x1, x2, lsl #3]")
        assert operand.parts[1].name == "x2"
        assert operand.parts[1].shift == "lsl"

    def test_unterminated_address(self):
        with pytest.raises(AsmSyntaxError, match="unrecognized address operand format"):
            parse_operand_text("[x1")

    def test_empty_operand(self):
        with pytest.raises(AsmSyntaxError, match="operand expected"):
            parse_operand_text("x0, , x1")


class TestExpression:
    def _expr(self, text):
        (operand,) = parse_operand_text(text)
        return operand.expr

    def test_symbols_and_arithmetic(self):
        assert self._expr("#label+4").evaluate({"label": 0x100}) == 0x104
        assert self._expr("#end-start").evaluate({"start": 8, "end": 20}) == 12

    def test_parentheses_and_unary_minus(self):
        assert self._expr("#-(2-5)").evaluate() == 3

    def test_current_address(self):
        assert self._expr("#.+8").evaluate(dot=0x40) == 0x48

    def test_binary_literal(self):
        assert self._expr("#0b101").evaluate() == 5

    # @intent:test_case_undefined_symbol 未定義シンボルはその位置を持つAsmSyntaxErrorになることを検証します。
    def test_undefined_symbol(self):
        (operand,) = parse_operand_text("#foo", 10)
        with pytest.raises(AsmSyntaxError, match="undefined symbol 'foo'") as info:
            operand.expr.evaluate({})
        assert (info.value.start, info.value.end) == (11, 14)

    def test_missing_operator(self):
        with pytest.raises(AsmSyntaxError, match="operator expected"):
            self._expr("#1 2").evaluate()

    def test_incomplete(self):
        with pytest.raises(AsmSyntaxError, match="incomplete expression"):
            self._expr("#1+").evaluate()
