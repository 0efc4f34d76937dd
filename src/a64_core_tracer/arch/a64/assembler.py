# a64_core_tracer/arch/a64/assembler.py
"""
A64 アセンブラ。

1命令のアセンブル（`assemble`）と、ラベル・ディレクティブを含むソース全体の2パスアセンブル
（`assemble_lines`）を提供します。1行の誤りは行番号付きで `errors` に記録され、残りの行は処理を続けます。
"""
from typing import List, Optional, Tuple

from a64_core_tracer.common.types import SymbolMap
from a64_core_tracer.core.errors import AsmSyntaxError
from a64_core_tracer.loader.assembler import BaseAssembler, ParsedLine
from a64_core_tracer.transport.memory import ENDIANNESS
from a64_core_tracer.arch.a64.codec import InstructionCodec
from a64_core_tracer.arch.a64.operands import (
    ImmediateOperand, Token, parse_operands, tokenize_operands,
)

INSTRUCTION_BYTES = 4
MAX_ALIGNMENT = 16

# @intent:constant データディレクティブと1要素あたりのバイト数。
DATA_DIRECTIVES = {".byte": 1, ".hword": 2, ".word": 4, ".dword": 8}
LAYOUT_DIRECTIVES = (".org", ".align")


def _token_span(groups: List[List[Token]]) -> Tuple[int, int]:
    tokens = [token for group in groups for token in group]
    if not tokens:
        return 0, 0
    return tokens[0].start, tokens[-1].end


# @intent:responsibility A64命令とデータディレクティブをメモリイメージ（原本）へアセンブルします。
class A64Assembler(BaseAssembler):
    """
    A64用のアセンブラ。`origin` はアセンブル結果のメモリイメージ、
    `symbols` はラベル表、`errors` は (行番号, AsmSyntaxError) のリストです。
    """
    def __init__(self, memory_size: int = 0x10000, endianness: str = "little",
                 codec: Optional[InstructionCodec] = None):
        if memory_size <= 0:
            raise ValueError("Memory size must be a positive integer.")
        if endianness not in ENDIANNESS:
            raise ValueError(f"Unsupported endianness: {endianness}")
        self._memory_size = memory_size
        self._endianness = endianness
        self._codec = codec or InstructionCodec()
        self.origin = bytearray(memory_size)
        self.symbols: SymbolMap = {}
        self.errors: List[Tuple[int, AsmSyntaxError]] = []

    # @intent:responsibility 1命令をアセンブルして原本イメージに書き込み、書き込んだバイト数を返します。
    # @intent:pre-condition current_addressは4バイト境界である必要があります。
    def assemble(self, mnemonic: str, operand_tokens: List[List[Token]], current_address: int) -> int:
        start, end = _token_span(operand_tokens)
        if current_address % INSTRUCTION_BYTES:
            raise AsmSyntaxError("instruction address not word aligned", start, end)
        operands = parse_operands(operand_tokens)
        words = self._codec.encode(
            mnemonic.lower(), operands, current_address,
            lambda expr: expr.evaluate(self.symbols, current_address))
        for index, word in enumerate(words):
            self._store(current_address + index * INSTRUCTION_BYTES, INSTRUCTION_BYTES, word, start, end)
        return len(words) * INSTRUCTION_BYTES

    def _store(self, address: int, width: int, value: int, start: int, end: int) -> None:
        if address < 0 or address + width > self._memory_size:
            raise AsmSyntaxError(f"address {address:#x} outside memory image", start, end)
        value &= (1 << (width * 8)) - 1
        self.origin[address:address + width] = value.to_bytes(width, self._endianness)

    def _record(self, line_number: int, error: AsmSyntaxError) -> None:
        self.errors.append((line_number, error))

    # @intent:responsibility ソース全体を2パスでアセンブルし、シンボルマップと原本イメージを返します。
    # @intent:rationale パス1でラベルのアドレスと各行の配置を確定し、パス2で前方参照を含む式を評価します。
    def assemble_lines(self, lines: List[str]) -> Tuple[SymbolMap, bytes]:
        self.origin = bytearray(self._memory_size)
        self.symbols = {}
        self.errors = []

        parsed_lines: List[Optional[ParsedLine]] = []
        for number, line in enumerate(lines, 1):
            try:
                parsed_lines.append(self._parse_line(line))
            except AsmSyntaxError as error:
                self._record(number, error)
                parsed_lines.append(None)

        # First pass: Build symbol map and lay out every line
        addresses: List[int] = []
        address = 0
        for number, parsed in enumerate(parsed_lines, 1):
            if parsed is not None:
                try:
                    address = self._layout(parsed, address)
                except AsmSyntaxError as error:
                    self._record(number, error)
            addresses.append(address)
            if parsed is not None and parsed.mnemonic:
                address += self._size(parsed)

        # Second pass: Generate binary
        for number, (parsed, line_address) in enumerate(zip(parsed_lines, addresses), 1):
            if parsed is None or not parsed.mnemonic or parsed.mnemonic in LAYOUT_DIRECTIVES:
                continue
            try:
                self._emit(parsed, line_address)
            except AsmSyntaxError as error:
                self._record(number, error)

        self.errors.sort(key=lambda item: item[0])
        return dict(self.symbols), bytes(self.origin)

    # @intent:responsibility .org/.align を処理してアドレスを更新し、ラベルを定義します。
    def _layout(self, parsed: ParsedLine, address: int) -> int:
        if parsed.mnemonic in LAYOUT_DIRECTIVES:
            value = self._directive_value(parsed, address)
            if parsed.mnemonic == ".org":
                if not 0 <= value <= self._memory_size:
                    raise AsmSyntaxError(f"origin {value:#x} outside memory image",
                                         parsed.column, parsed.column + len(parsed.operands))
                address = value
            else:
                if not 0 <= value <= MAX_ALIGNMENT:
                    raise AsmSyntaxError("alignment out of range",
                                         parsed.column, parsed.column + len(parsed.operands))
                boundary = 1 << value
                address = (address + boundary - 1) & ~(boundary - 1)
        elif parsed.mnemonic and parsed.mnemonic.startswith(".") and parsed.mnemonic not in DATA_DIRECTIVES:
            raise AsmSyntaxError(f"unknown directive '{parsed.mnemonic}'",
                                 parsed.column, parsed.column + len(parsed.operands))

        if parsed.label:
            if parsed.label in self.symbols:
                raise AsmSyntaxError(f"duplicate label '{parsed.label}'", 0, len(parsed.label))
            self.symbols[parsed.label] = address
        return address

    def _directive_value(self, parsed: ParsedLine, address: int) -> int:
        operands = parse_operands(tokenize_operands(parsed.operands, parsed.column))
        if len(operands) != 1 or not isinstance(operands[0], ImmediateOperand):
            raise AsmSyntaxError("immediate expected", parsed.column, parsed.column + len(parsed.operands))
        return operands[0].expr.evaluate(self.symbols, address)

    def _size(self, parsed: ParsedLine) -> int:
        if parsed.mnemonic in LAYOUT_DIRECTIVES:
            return 0
        if parsed.mnemonic in DATA_DIRECTIVES:
            try:
                count = len(tokenize_operands(parsed.operands, parsed.column))
            except AsmSyntaxError:
                return 0
            return count * DATA_DIRECTIVES[parsed.mnemonic]
        if parsed.mnemonic.startswith("."):
            return 0
        return INSTRUCTION_BYTES

    def _emit(self, parsed: ParsedLine, address: int) -> None:
        groups = tokenize_operands(parsed.operands, parsed.column)
        if parsed.mnemonic in DATA_DIRECTIVES:
            self._emit_data(parsed, groups, address)
        elif not parsed.mnemonic.startswith("."):
            self.assemble(parsed.mnemonic, groups, address)

    # @intent:responsibility .byte/.hword/.word/.dword の値を評価して書き込みます。符号付き・符号なしの両方の範囲を許容します。
    def _emit_data(self, parsed: ParsedLine, groups: List[List[Token]], address: int) -> None:
        width = DATA_DIRECTIVES[parsed.mnemonic]
        bits = width * 8
        if not groups:
            raise AsmSyntaxError("immediate expected", parsed.column, parsed.column)
        for operand in parse_operands(groups):
            if not isinstance(operand, ImmediateOperand):
                raise AsmSyntaxError("immediate expected", operand.start, operand.end)
            value = operand.expr.evaluate(self.symbols, address)
            if not -(1 << (bits - 1)) <= value < (1 << bits):
                raise AsmSyntaxError("value out of range", operand.start, operand.end)
            self._store(address, width, value, operand.start, operand.end)
            address += width
