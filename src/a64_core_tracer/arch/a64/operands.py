# a64_core_tracer/arch/a64/operands.py
"""
オペランドの字句解析と構文解析

オペランド文字列をトップレベルのカンマで区切ったトークン列に分割し、
レジスタ・即値・メモリアドレスの閉じた型（タグ付きバリアント）へ変換します。
シフト/拡張キーワードは直前のレジスタに付加され、閉じた `]` の直後の即値は
ポストインデックスとして解釈されます。
"""
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional, Union

from a64_core_tracer.core.errors import AsmSyntaxError
from a64_core_tracer.arch.a64.state import REGISTER_NAMES

_TOKEN_RE = re.compile(r"""
    (?P<space>\s+)
  | (?P<number>0[xX][0-9a-fA-F]+|0[bB][01]+|\d+)
  | (?P<name>[A-Za-z_.$][\w.$]*)
  | (?P<punct>[\[\]#!,+\-()])
""", re.VERBOSE)

SHIFT_KEYWORD_RE = re.compile(r"^(lsl|lsr|asr|ror|[su]xt[bhwx])$")

# @intent:data_structure 1つの字句。start/endはオペランド文字列内の文字オフセットです。
@dataclass(frozen=True)
class Token:
    kind: str  # "number" | "name" | "punct"
    text: str
    start: int
    end: int

# @intent:responsibility 即値式（数値、シンボル、`.`、単項マイナス、二項 +/-）を保持し評価します。
@dataclass(frozen=True)
class Expression:
    tokens: tuple
    start: int
    end: int

    @property
    def text(self) -> str:
        return "".join(token.text for token in self.tokens)

    # @intent:responsibility シンボル表と現在アドレスを使って式を整数に評価します。
    def evaluate(self, symbols: Optional[Mapping[str, int]] = None, dot: int = 0) -> int:
        symbols = symbols or {}
        total = 0
        sign = 1
        expect_term = True
        depth_stack = []
        for token in self.tokens:
            if token.kind == "punct" and token.text in "+-":
                if token.text == "-":
                    sign = -sign
                expect_term = True
                continue
            if token.kind == "punct" and token.text == "(":
                if not expect_term:
                    raise AsmSyntaxError("operator expected", token.start, token.end)
                depth_stack.append((total, sign))
                total, sign = 0, 1
                continue
            if token.kind == "punct" and token.text == ")":
                if not depth_stack or expect_term:
                    raise AsmSyntaxError("unbalanced parentheses", token.start, token.end)
                inner = total
                total, sign = depth_stack.pop()
                total += sign * inner
                sign = 1
                continue
            if not expect_term:
                raise AsmSyntaxError("operator expected", token.start, token.end)
            total += sign * self._term(token, symbols, dot)
            sign = 1
            expect_term = False
        if expect_term or depth_stack:
            raise AsmSyntaxError("incomplete expression", self.start, self.end)
        return total

    @staticmethod
    def _term(token: Token, symbols: Mapping[str, int], dot: int) -> int:
        if token.kind == "number":
            return int(token.text, 0)
        if token.kind == "name":
            if token.text == ".":
                return dot
            if token.text in symbols:
                return symbols[token.text]
            raise AsmSyntaxError(f"undefined symbol '{token.text}'", token.start, token.end)
        raise AsmSyntaxError(f"unexpected '{token.text}' in expression", token.start, token.end)


# @intent:data_structure レジスタオペランド。シフト/拡張キーワードは後続のオペランドから付加されます。
@dataclass
class RegisterOperand:
    name: str
    start: int
    end: int
    shift: Optional[str] = None
    shift_amount: Optional[Expression] = None

    @property
    def number(self) -> int:
        return REGISTER_NAMES[self.name][0]

    @property
    def wide(self) -> bool:
        return REGISTER_NAMES[self.name][1]

# @intent:data_structure 即値オペランド。加減算の即値に限り `lsl #12` が後続から付加されます。
@dataclass
class ImmediateOperand:
    expr: Expression
    start: int
    end: int
    shift: Optional[str] = None
    shift_amount: Optional[Expression] = None

# @intent:data_structure メモリアドレスオペランド。partsは角括弧内を再帰的に解析した結果です。
@dataclass
class AddressOperand:
    parts: List["Operand"]
    start: int
    end: int
    pre_index: bool = False
    post_index: Optional[Expression] = None

    @property
    def base(self) -> Optional["Operand"]:
        return self.parts[0] if self.parts else None

Operand = Union[RegisterOperand, ImmediateOperand, AddressOperand]


# @intent:responsibility オペランド文字列を字句に分解し、トップレベルのカンマでオペランドごとに分割します。
# @intent:rationale 角括弧内のカンマはアドレスオペランド内部の区切りとして残します。
def tokenize_operands(text: str, offset: int = 0) -> List[List[Token]]:
    groups: List[List[Token]] = [[]]
    depth = 0
    position = 0
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if not match:
            raise AsmSyntaxError(f"unexpected character '{text[position]}'",
                                 offset + position, offset + position + 1)
        kind = match.lastgroup
        position = match.end()
        if kind == "space":
            continue
        token = Token(kind, match.group(), offset + match.start(), offset + match.end())
        if kind == "punct":
            if token.text == "[":
                depth += 1
            elif token.text == "]":
                depth -= 1
            elif token.text == "," and depth == 0:
                groups.append([])
                continue
        groups[-1].append(token)
    if len(groups) == 1 and not groups[0]:
        return []
    return groups


def _span(tokens: List[Token]):
    return tokens[0].start, tokens[-1].end


def _split_commas(tokens: List[Token]) -> List[List[Token]]:
    groups: List[List[Token]] = [[]]
    for token in tokens:
        if token.kind == "punct" and token.text == ",":
            groups.append([])
        else:
            groups[-1].append(token)
    return groups


def _is_punct(token: Token, text: str) -> bool:
    return token.kind == "punct" and token.text == text


# @intent:responsibility トークン列のリストを左から順に解析し、オペランド列を返します。
def parse_operands(groups: List[List[Token]]) -> List[Operand]:
    result: List[Operand] = []
    for tokens in groups:
        _parse_one(tokens, result)
    return result


def _parse_one(tokens: List[Token], result: List[Operand]) -> None:
    if not tokens:
        raise AsmSyntaxError("operand expected", 0, 0)
    start, end = _span(tokens)
    first = tokens[0]
    word = first.text.lower() if first.kind == "name" else ""

    if word in REGISTER_NAMES:
        if len(tokens) > 1:
            raise AsmSyntaxError("register name expected", start, end)
        result.append(RegisterOperand(word, start, end))
        return

    if word and SHIFT_KEYWORD_RE.match(word):
        previous = result[-1] if result else None
        shiftable = isinstance(previous, RegisterOperand) or (
            isinstance(previous, ImmediateOperand) and word == "lsl")
        if not shiftable or previous.shift is not None:
            raise AsmSyntaxError("bad register for shift or extension", start, end)
        rest = tokens[1:]
        if rest and _is_punct(rest[0], "#"):
            rest = rest[1:]
        previous.shift = word
        previous.shift_amount = Expression(tuple(rest), *_span(rest)) if rest else None
        previous.end = end
        return

    if _is_punct(first, "["):
        pre_index = False
        body = tokens
        if len(body) > 2 and _is_punct(body[-1], "!"):
            pre_index = True
            body = body[:-1]
        if len(body) < 2 or not _is_punct(body[-1], "]"):
            raise AsmSyntaxError("unrecognized address operand format", start, end)
        inner = body[1:-1]
        if not inner:
            raise AsmSyntaxError("unrecognized address operand format", start, end)
        parts = parse_operands(_split_commas(inner))
        if any(isinstance(part, AddressOperand) for part in parts):
            raise AsmSyntaxError("unrecognized address operand format", start, end)
        result.append(AddressOperand(parts, start, end, pre_index=pre_index))
        return

    rest = tokens[1:] if _is_punct(first, "#") else tokens
    if not rest:
        raise AsmSyntaxError("immediate expected", start, end)
    expr = Expression(tuple(rest), *_span(rest))
    previous = result[-1] if result else None
    if isinstance(previous, AddressOperand) and previous.post_index is None:
        previous.post_index = expr
        previous.end = end
        return
    result.append(ImmediateOperand(expr, start, end))


# @intent:utility_function オペランド文字列を解析する簡易入口です。
def parse_operand_text(text: str, offset: int = 0) -> List[Operand]:
    return parse_operands(tokenize_operands(text, offset))
