# a64_core_tracer/arch/a64/codec.py
"""
A64 命令コーデック

オペコードテーブルとビットパターンを用いて、(ニーモニック, オペランド) から命令語への符号化と、
命令語から (エントリ, 実行用フィールド, 実行ハンドラ) への復号を行います。
オペランド種別ごとの処理は閉じた分岐で網羅し、未知の種別は例外として扱います。
"""
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from a64_core_tracer.core.errors import AsmSyntaxError, EncodingTableError
from a64_core_tracer.core.snapshot import DecodedInstruction
from a64_core_tracer.arch.a64.alu import (
    EXTEND_TYPES, SHIFT_TYPES, decode_bit_masks, encode_bit_mask, mask, sign_extend,
)
from a64_core_tracer.arch.a64.opcodes import A64_OPCODE_TABLE, REGISTER_ROLES
from a64_core_tracer.arch.a64.operands import (
    AddressOperand, Expression, ImmediateOperand, Operand, RegisterOperand,
)
from a64_core_tracer.arch.a64.state import register_name
from a64_core_tracer.arch.a64.table import OpcodeEntry, OpcodeTable

Evaluator = Callable[[Expression], int]

IMMEDIATE_KINDS = "ihtmJKPQY-FGlHb"
REGISTER_INDEX_EXTENDS = {None: 3, "lsl": 3, "uxtw": 2, "sxtw": 6, "sxtx": 7}


def _span(operands: Sequence[Operand]) -> Tuple[int, int]:
    if not operands:
        return 0, 0
    return operands[0].start, operands[-1].end


def _plain_register(operand: Operand) -> bool:
    return isinstance(operand, RegisterOperand) and operand.shift is None


def _wide_encodable(value: int, datasize: int) -> bool:
    for candidate in (value, ~value & mask(datasize)):
        if any(candidate & ~(0xFFFF << (16 * hw)) == 0 for hw in range(datasize // 16)):
            return True
    return False


# @intent:responsibility 1回の符号化における中間状態（フィールド値、命令幅、直前のlsb）を保持します。
class _EncodeContext:
    def __init__(self, entry: OpcodeEntry, address: int, evaluate: Evaluator):
        self.entry = entry
        self.address = address
        self.evaluate = evaluate
        self.values: Dict[str, int] = {}
        self.wide: Optional[bool] = None
        self.lsb = 0

    @property
    def datasize(self) -> int:
        return 32 if self.wide is False else 64

    def access_size(self) -> int:
        if self.entry.size:
            return self.entry.size
        return 8 if self.datasize == 64 else 4

    def set(self, letter: str, value: int) -> None:
        self.values[letter] = value


# @intent:responsibility テーブル駆動の符号化・復号を提供します。
# @intent:rationale 別名（エイリアス）エントリは表示とアセンブルに用い、実行は常に一般形のフィールドから行います。
class InstructionCodec:
    """
    A64の命令コーデック。`handlers` は実行操作名から実行関数への対応です。
    """
    def __init__(self, table: OpcodeTable = A64_OPCODE_TABLE,
                 handlers: Optional[Mapping[str, Callable]] = None):
        self._table = table
        self._handlers = handlers or {}
        if handlers is not None:
            for entry in table.decode_order:
                if entry.op not in handlers:
                    raise EncodingTableError(f"No handler bound for operation '{entry.op}'")

    @property
    def table(self) -> OpcodeTable:
        return self._table

    # ------------------------------------------------------------------
    # 符号化
    # ------------------------------------------------------------------

    # @intent:responsibility ニーモニックとオペランド列を命令語のリストに符号化します。
    # @intent:rationale 形状が一致したエントリで範囲エラーが出ても後続の形状一致エントリを試し、
    #                  どれも成功しなければ最初のエラーを報告します。
    def encode(self, mnemonic: str, operands: Sequence[Operand], address: int,
               evaluate: Optional[Evaluator] = None) -> List[int]:
        evaluate = evaluate or (lambda expr: expr.evaluate(dot=address))
        entries = self._table.entries(mnemonic)
        if not entries:
            raise AsmSyntaxError(f"unknown mnemonic '{mnemonic}'", *_span(operands))
        first_error: Optional[AsmSyntaxError] = None
        for entry in entries:
            if not self.shape_accepts(entry.shape, operands):
                continue
            if not entry.implemented:
                raise AsmSyntaxError(f"{mnemonic} is not implemented", *_span(operands))
            try:
                return [self._encode_entry(entry, operands, address, evaluate)]
            except AsmSyntaxError as error:
                if first_error is None:
                    first_error = error
        if first_error is not None:
            raise first_error
        raise AsmSyntaxError(f"no matching form for {mnemonic}", *_span(operands))

    # @intent:responsibility オペランドの種別・個数・順序が形状コードに一致するかを判定します。
    def shape_accepts(self, shape: str, operands: Sequence[Operand]) -> bool:
        if len(shape) != len(operands):
            return False
        return all(self._kind_accepts(kind, operand) for kind, operand in zip(shape, operands))

    def _kind_accepts(self, kind: str, operand: Operand) -> bool:
        if kind in "rxw":
            return _plain_register(operand)
        if kind == "e":
            return isinstance(operand, RegisterOperand) and operand.shift in EXTEND_TYPES
        if kind == "s":
            return isinstance(operand, RegisterOperand) and operand.shift in (None,) + SHIFT_TYPES
        if kind == "S":
            return isinstance(operand, RegisterOperand) and operand.shift in (None,) + SHIFT_TYPES[:3]
        if kind in IMMEDIATE_KINDS:
            return isinstance(operand, ImmediateOperand) and (operand.shift is None or kind == "t")
        if not isinstance(operand, AddressOperand):
            return False
        parts = operand.parts
        if not parts or not _plain_register(parts[0]):
            return False
        if kind in "ao":
            return (not operand.pre_index and operand.post_index is None and len(parts) <= 2
                    and all(isinstance(p, ImmediateOperand) and p.shift is None for p in parts[1:]))
        if kind == "!":
            return (operand.pre_index and operand.post_index is None and len(parts) <= 2
                    and all(isinstance(p, ImmediateOperand) and p.shift is None for p in parts[1:]))
        if kind == "+":
            return not operand.pre_index and operand.post_index is not None and len(parts) == 1
        if kind == "R":
            return (not operand.pre_index and operand.post_index is None and len(parts) == 2
                    and isinstance(parts[1], RegisterOperand)
                    and parts[1].shift in REGISTER_INDEX_EXTENDS)
        raise EncodingTableError(f"Unknown operand kind '{kind}'")

    def _encode_entry(self, entry: OpcodeEntry, operands: Sequence[Operand], address: int,
                      evaluate: Evaluator) -> int:
        ctx = _EncodeContext(entry, address, evaluate)
        for kind, role, operand in zip(entry.shape, entry.roles, operands):
            self._encode_operand(kind, role, operand, ctx)
        pattern = entry.pattern
        if pattern.has_field("z") and "z" not in ctx.values:
            ctx.set("z", mask(pattern.width("z")) if ctx.wide is not False else 0)
        try:
            return pattern.encode(ctx.values)
        except ValueError as error:
            raise AsmSyntaxError(str(error), *_span(operands))

    def _value(self, ctx: _EncodeContext, expr: Expression) -> int:
        return ctx.evaluate(expr)

    def _register(self, operand: RegisterOperand, ctx: _EncodeContext, wide: Optional[bool]) -> int:
        if wide is not None and operand.wide != wide:
            expected = "x" if wide else "w"
            raise AsmSyntaxError(f"{expected} register expected", operand.start, operand.end)
        return operand.number

    @staticmethod
    def _check(condition: bool, message: str, operand) -> None:
        if not condition:
            raise AsmSyntaxError(message, operand.start, operand.end)

    # @intent:responsibility 1つのオペランドを種別に従ってフィールド値へ変換します。
    def _encode_operand(self, kind: str, role: str, operand: Operand, ctx: _EncodeContext) -> None:
        if kind == "r":
            if ctx.wide is None:
                ctx.wide = operand.wide
            number = self._register(operand, ctx, ctx.wide)
            for letter in role:
                ctx.set(letter, number)
        elif kind in "xw":
            number = self._register(operand, ctx, kind == "x")
            for letter in role:
                ctx.set(letter, number)
        elif kind == "e":
            option = EXTEND_TYPES.index(operand.shift)
            self._register(operand, ctx, (option & 3) == 3)
            amount = self._value(ctx, operand.shift_amount) if operand.shift_amount else 0
            self._check(0 <= amount <= 4, "extend amount must be 0-4", operand)
            ctx.set("m", operand.number)
            ctx.set("o", option)
            ctx.set("i", amount)
        elif kind in "sS":
            self._register(operand, ctx, ctx.wide)
            shift = SHIFT_TYPES.index(operand.shift) if operand.shift else 0
            amount = self._value(ctx, operand.shift_amount) if operand.shift_amount else 0
            self._check(0 <= amount < ctx.datasize, "shift amount out of range", operand)
            ctx.set("m", operand.number)
            ctx.set("s", shift)
            ctx.set("i", amount)
        elif kind in IMMEDIATE_KINDS:
            self._encode_immediate(kind, role, operand, self._value(ctx, operand.expr), ctx)
        else:
            self._encode_address(kind, operand, ctx)

    def _encode_immediate(self, kind: str, role: str, operand: ImmediateOperand, value: int,
                          ctx: _EncodeContext) -> None:
        datasize = ctx.datasize
        pattern = ctx.entry.pattern
        if kind == "i":
            width = pattern.width(role)
            self._check(0 <= value < (1 << width), "immediate out of range", operand)
            ctx.set(role, value)
        elif kind == "h":
            self._check(0 <= value < datasize, "shift amount out of range", operand)
            ctx.set(role, value)
        elif kind == "t":
            amount = self._value(ctx, operand.shift_amount) if operand.shift_amount else 0
            if operand.shift is not None:
                self._check(amount in (0, 12), "shift amount must be 0 or 12", operand)
            if amount == 12:
                self._check(0 <= value < 4096, "immediate out of range", operand)
                ctx.set("s", 1)
                ctx.set("i", value)
            elif 0 <= value < 4096:
                ctx.set("s", 0)
                ctx.set("i", value)
            else:
                self._check(value > 0 and value % 4096 == 0 and (value >> 12) < 4096,
                            "immediate out of range", operand)
                ctx.set("s", 1)
                ctx.set("i", value >> 12)
        elif kind == "m":
            self._check(-(1 << (datasize - 1)) <= value < (1 << datasize), "immediate out of range", operand)
            encoded = encode_bit_mask(value, datasize)
            self._check(encoded is not None, "immediate cannot be encoded as a bitmask", operand)
            n, immr, imms = encoded
            ctx.set("N", n)
            ctx.set("r", immr)
            ctx.set("s", imms)
        elif kind in "JK":
            if kind == "K":
                self._check(-(1 << datasize) < value < (1 << datasize), "immediate out of range", operand)
                value = ~value & mask(datasize)
            self._check(0 <= value < (1 << datasize), "immediate out of range", operand)
            for hw in range(datasize // 16):
                if value & ~(0xFFFF << (16 * hw)) == 0:
                    ctx.set("h", hw)
                    ctx.set("j", value >> (16 * hw))
                    break
            else:
                self._check(False, "immediate cannot be encoded as a wide immediate", operand)
        elif kind == "P":
            offset = value - ctx.address
            self._check(offset % 4 == 0, "branch target not word aligned", operand)
            width = pattern.width("I")
            words = offset >> 2
            self._check(-(1 << (width - 1)) <= words < (1 << (width - 1)), "branch target out of range", operand)
            ctx.set("I", words & mask(width))
        elif kind in "QY":
            if kind == "Q":
                offset = value - ctx.address
            else:
                offset = (value >> 12) - (ctx.address >> 12)
            self._check(-(1 << 20) <= offset < (1 << 20), "address out of range", operand)
            offset &= mask(21)
            ctx.set("I", offset >> 2)
            ctx.set("i", offset & 3)
        elif kind == "-":
            self._check(0 <= value < datasize, "shift amount out of range", operand)
            ctx.set("r", (-value) % datasize)
            ctx.set("s", datasize - 1 - value)
        elif kind in "Fl":
            self._check(0 <= value < datasize, "lsb out of range", operand)
            ctx.lsb = value
            ctx.set("r", (-value) % datasize if kind == "F" else value)
        elif kind in "GH":
            self._check(1 <= value <= datasize - ctx.lsb, "bitfield width out of range", operand)
            ctx.set("s", value - 1 if kind == "G" else ctx.lsb + value - 1)
        elif kind == "b":
            limit = 32 if ctx.wide is False else 64
            self._check(0 <= value < limit, "bit number out of range", operand)
            ctx.set("b", value)
        else:
            raise EncodingTableError(f"Unknown operand kind '{kind}'")

    def _offset_field(self, offset: int, operand: Operand, ctx: _EncodeContext, scaled: bool) -> None:
        width = ctx.entry.pattern.width("I")
        if scaled:
            size = ctx.access_size()
            self._check(offset % size == 0, f"offset must be a multiple of {size}", operand)
            offset //= size
        if ctx.entry.pair or not scaled:
            self._check(-(1 << (width - 1)) <= offset < (1 << (width - 1)), "offset out of range", operand)
        else:
            self._check(0 <= offset < (1 << width), "offset out of range", operand)
        ctx.set("I", offset & mask(width))

    def _encode_address(self, kind: str, operand: AddressOperand, ctx: _EncodeContext) -> None:
        base = operand.parts[0]
        self._check(base.wide, "base register must be an x register", base)
        ctx.set("n", base.number)
        if kind in "ao!":
            offset = self._value(ctx, operand.parts[1].expr) if len(operand.parts) > 1 else 0
            scaled = kind == "a" or ctx.entry.pair
            self._offset_field(offset, operand, ctx, scaled)
        elif kind == "+":
            self._offset_field(self._value(ctx, operand.post_index), operand, ctx, ctx.entry.pair)
        elif kind == "R":
            index = operand.parts[1]
            option = REGISTER_INDEX_EXTENDS[index.shift]
            self._register(index, ctx, (option & 3) == 3)
            scale = ctx.access_size().bit_length() - 1
            amount = self._value(ctx, index.shift_amount) if index.shift_amount else None
            if amount is None:
                ctx.set("S", 0)
            else:
                self._check(amount in (0, scale), f"shift amount must be 0 or {scale}", index)
                ctx.set("S", 1 if amount == scale else 0)
            ctx.set("m", index.number)
            ctx.set("o", option)
        else:
            raise EncodingTableError(f"Unknown operand kind '{kind}'")

    # ------------------------------------------------------------------
    # 復号
    # ------------------------------------------------------------------

    # @intent:responsibility 命令語を復号します。どのエントリにも一致しなければNoneを返します。
    # @intent:post-condition 同じ命令語に対して常に同じ結果を返します（テーブル以外の状態に依存しません）。
    def decode(self, word: int, address: int = 0) -> Optional[DecodedInstruction]:
        found = self._table.resolve(word, self.accepts_fields)
        if found is None:
            return None
        entry, _ = found
        fields, _ = self._table.base_form(entry.op).decode(word)
        registers = {REGISTER_ROLES[letter]: value
                     for letter, value in fields.items() if letter in REGISTER_ROLES}
        return DecodedInstruction(
            address=address,
            word=word,
            mnemonic=entry.mnemonic,
            entry=entry,
            fields=MappingProxyType(fields),
            registers=MappingProxyType(registers),
            handler=self._handlers.get(entry.op),
        )

    @staticmethod
    def is_wide(entry: OpcodeEntry, fields: Mapping[str, int]) -> bool:
        if "z" in fields:
            return fields["z"] != 0
        if "b" in fields:
            return fields["b"] >= 32
        return "x" in entry.shape or "w" not in entry.shape

    # @intent:responsibility リテラルビットだけでは表せない、エントリ固有のフィールド制約を判定します。
    def accepts_fields(self, entry: OpcodeEntry, fields: Mapping[str, int]) -> bool:
        pattern = entry.pattern
        if pattern.has_field("z") and fields["z"] not in (0, mask(pattern.width("z"))):
            return False
        datasize = 64 if self.is_wide(entry, fields) else 32
        if entry.op in ("bitfield", "extract"):
            if any(fields.get(letter, 0) >= datasize for letter in "rs"):
                return False
        for kind, role in zip(entry.shape, entry.roles):
            if kind in "rxw" and len({fields[letter] for letter in role}) > 1:
                return False
            if kind == "e" and fields["i"] > 4:
                return False
            if kind == "S" and fields["s"] == 3:
                return False
            if kind in "sS" and fields["i"] >= datasize:
                return False
            if kind == "m":
                if datasize == 32 and fields["N"]:
                    return False
                decoded = decode_bit_masks(fields["N"], fields["s"], fields["r"], datasize)
                if decoded is None:
                    return False
                # mov は movz/movn で表せない値の場合だけ論理即値の別名になります
                if entry.mnemonic == "mov" and _wide_encodable(decoded[0], datasize):
                    return False
            if kind in "JK":
                if fields["j"] == 0 and fields["h"] != 0:
                    return False
                if fields["h"] >= datasize // 16:
                    return False
                if kind == "K" and datasize == 32 and fields["j"] == 0xFFFF:
                    return False
            if kind == "-" and (fields["s"] == datasize - 1 or fields["s"] + 1 != fields["r"]):
                return False
            if kind == "F" and fields["s"] >= fields["r"]:
                return False
            if kind == "l" and fields["s"] < fields["r"]:
                return False
            if kind == "R" and fields["o"] not in (2, 3, 6, 7):
                return False
        return True

    # ------------------------------------------------------------------
    # 表示
    # ------------------------------------------------------------------

    # @intent:responsibility 別名エントリのフィールドからオペランド文字列を組み立てます。
    def format_operands(self, entry: OpcodeEntry, word: int, address: int) -> List[str]:
        fields, _ = entry.pattern.decode(word)
        wide = self.is_wide(entry, fields)
        return [self._format_operand(entry, kind, role, fields, wide, address)
                for kind, role in zip(entry.shape, entry.roles)]

    def _format_operand(self, entry: OpcodeEntry, kind: str, role: str, fields: Mapping[str, int],
                        wide: bool, address: int) -> str:
        datasize = 64 if wide else 32
        if kind == "r":
            return register_name(fields[role[0]], wide)
        if kind in "xw":
            return register_name(fields[role[0]], kind == "x")
        if kind == "e":
            text = f"{register_name(fields['m'], (fields['o'] & 3) == 3)}, {EXTEND_TYPES[fields['o']]}"
            return text + (f" #{fields['i']}" if fields["i"] else "")
        if kind in "sS":
            text = register_name(fields["m"], wide)
            if fields["s"] or fields["i"]:
                text += f", {SHIFT_TYPES[fields['s']]} #{fields['i']}"
            return text
        if kind in "ih":
            return format_immediate(fields[role])
        if kind == "b":
            return format_immediate(fields["b"])
        if kind == "t":
            if fields["s"] and not fields["i"]:
                return "#0, lsl #12"
            return format_immediate(fields["i"] << (12 * fields["s"]))
        if kind == "m":
            wmask, _ = decode_bit_masks(fields["N"], fields["s"], fields["r"], datasize)
            return f"#{wmask:#x}"
        if kind == "J":
            return format_immediate(fields["j"] << (16 * fields["h"]))
        if kind == "K":
            value = ~(fields["j"] << (16 * fields["h"])) & mask(datasize)
            return format_immediate(sign_extend(value, datasize))
        if kind == "P":
            offset = sign_extend(fields["I"], entry.pattern.width("I")) * 4
            return f"{address + offset:#x}"
        if kind == "Q":
            offset = sign_extend((fields["I"] << 2) | fields["i"], 21)
            return f"{address + offset:#x}"
        if kind == "Y":
            offset = sign_extend((fields["I"] << 2) | fields["i"], 21)
            return f"{(address & ~0xFFF) + (offset << 12):#x}"
        if kind == "-":
            return format_immediate(datasize - 1 - fields["s"])
        if kind == "F":
            return format_immediate((-fields["r"]) % datasize)
        if kind == "G":
            return format_immediate(fields["s"] + 1)
        if kind == "l":
            return format_immediate(fields["r"])
        if kind == "H":
            return format_immediate(fields["s"] - fields["r"] + 1)
        if kind in "ao!+R":
            return self._format_address(entry, kind, fields, wide)
        raise EncodingTableError(f"Unknown operand kind '{kind}'")

    def _format_address(self, entry: OpcodeEntry, kind: str, fields: Mapping[str, int], wide: bool) -> str:
        base = register_name(fields["n"], True)
        size = entry.size or (8 if wide else 4)
        if kind == "R":
            option = fields["o"]
            scale = size.bit_length() - 1
            text = f"[{base}, {register_name(fields['m'], (option & 3) == 3)}"
            if option != 3:
                text += f", {EXTEND_TYPES[option]}"
                if fields["S"]:
                    text += f" #{scale}"
            elif fields["S"]:
                text += f", lsl #{scale}"
            return text + "]"

        width = entry.pattern.width("I")
        if entry.pair:
            offset = sign_extend(fields["I"], width) * size
        elif kind == "a":
            offset = fields["I"] * size
        else:
            offset = sign_extend(fields["I"], width)
        if kind == "+":
            return f"[{base}], {format_immediate(offset)}"
        if kind == "!":
            return f"[{base}, {format_immediate(offset)}]!"
        return f"[{base}, {format_immediate(offset)}]" if offset else f"[{base}]"


# @intent:utility_function 即値を表示用文字列に変換します。小さな値は10進、大きな値は16進です。
def format_immediate(value: int) -> str:
    if -256 < value < 256:
        return f"#{value}"
    if value < 0:
        return f"#-{-value:#x}"
    return f"#{value:#x}"
