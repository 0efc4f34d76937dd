# a64_core_tracer/arch/a64/instructions/alu.py
"""
データ処理命令の実装。

加減算、論理演算、ワイド即値転送、ビットフィールド、乗除算、PC相対アドレス計算を扱います。
各ハンドラは一般形のフィールドを読み、分岐しない命令なのでNoneを返します。
"""
from typing import Optional

from a64_core_tracer.core.snapshot import DecodedInstruction
from a64_core_tracer.transport.memory import MemoryImage
from a64_core_tracer.arch.a64.alu import (
    add_with_carry, count_leading_sign_bits, count_leading_zeros, decode_bit_masks, extend_value,
    logic_flags, mask, reverse_bits, reverse_bytes, rotate_right, shift_value, sign_extend,
)
from a64_core_tracer.arch.a64.state import A64CpuState
from .base import datasize, read_reg, set_flags, write_reg


# --- 加減算 ---

# @intent:utility_function p=1なら減算（第2オペランドを反転しキャリー1）として結果を書き、f=1ならNZCVを更新します。
def _add_sub(state: A64CpuState, fields, op1: int, op2: int, carry: int, size: int) -> None:
    if fields["p"]:
        op2 = ~op2 & mask(size)
    result, nzcv = add_with_carry(op1, op2, carry, size)
    write_reg(state, fields["d"], result, size)
    if fields["f"]:
        set_flags(state, nzcv)

# @intent:responsibility ADD/SUB(S) (extended register) を実行します。
def execute_addsub_ext(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    op1 = read_reg(state, f["n"], size)
    op2 = extend_value(state.registers.read(f["m"]), f["o"], f["i"], size)
    _add_sub(state, f, op1, op2, f["p"], size)
    return None

# @intent:responsibility ADD/SUB(S) (shifted register) を実行します。
def execute_addsub_sreg(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    op1 = read_reg(state, f["n"], size)
    op2 = shift_value(read_reg(state, f["m"], size), f["s"], f["i"], size)
    _add_sub(state, f, op1, op2, f["p"], size)
    return None

# @intent:responsibility ADD/SUB(S) (immediate) を実行します。s=1なら即値を12ビット左シフトします。
def execute_addsub_imm(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    op1 = read_reg(state, f["n"], size)
    op2 = f["i"] << (12 * f["s"])
    _add_sub(state, f, op1, op2, f["p"], size)
    return None

# @intent:responsibility ADC/SBC(S) を実行します。キャリー入力は現在のCフラグです。
def execute_addsub_carry(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    op1 = read_reg(state, f["n"], size)
    op2 = read_reg(state, f["m"], size)
    _add_sub(state, f, op1, op2, int(state.flag_c), size)
    return None


# --- 論理演算 ---

def _logic(state: A64CpuState, fields, op1: int, op2: int, size: int) -> None:
    opc = fields["c"]
    if opc == 0b00 or opc == 0b11:
        result = op1 & op2
    elif opc == 0b01:
        result = op1 | op2
    else:
        result = op1 ^ op2
    write_reg(state, fields["d"], result, size)
    if opc == 0b11:
        set_flags(state, logic_flags(result, size))

# @intent:responsibility AND/ORR/EOR/ANDS (shifted register) とN=1の反転形(BIC/ORN/EON/BICS)を実行します。
def execute_logic_sreg(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    op2 = shift_value(read_reg(state, f["m"], size), f["s"], f["i"], size)
    if f["N"]:
        op2 = ~op2 & mask(size)
    _logic(state, f, read_reg(state, f["n"], size), op2, size)
    return None

# @intent:responsibility AND/ORR/EOR/ANDS (bitmask immediate) を実行します。
def execute_logic_imm(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    wmask, _ = decode_bit_masks(f["N"], f["s"], f["r"], size)
    _logic(state, f, read_reg(state, f["n"], size), wmask, size)
    return None


# --- ワイド即値 ---

# @intent:responsibility MOVN(c=00)/MOVZ(c=10)/MOVK(c=11) を実行します。
def execute_movewide(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    shift = 16 * f["h"]
    imm = f["j"] << shift
    if f["c"] == 0b11:
        current = read_reg(state, f["d"], size)
        result = (current & ~(0xFFFF << shift)) | imm
    elif f["c"] == 0b00:
        result = ~imm
    else:
        result = imm
    write_reg(state, f["d"], result, size)
    return None


# --- ビットフィールド ---

# @intent:responsibility SBFM(c=00)/BFM(c=01)/UBFM(c=10) を実行します。
# @intent:rationale ARMの疑似コードどおり、回転したソースをwmaskで選び、tmaskの外側を拡張ビットで埋めます。
def execute_bitfield(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    immr, imms = f["r"], f["s"]
    wmask, tmask = decode_bit_masks(f["N"], imms, immr, size, immediate=False)
    src = read_reg(state, f["n"], size)
    bot = rotate_right(src, immr, size) & wmask
    if f["c"] == 0b01:
        dst = read_reg(state, f["d"], size)
        bot |= dst & ~wmask
        top = dst
    elif f["c"] == 0b00:
        top = mask(size) if (src >> imms) & 1 else 0
    else:
        top = 0
    result = (top & ~tmask) | (bot & tmask)
    write_reg(state, f["d"], result, size)
    return None

# @intent:responsibility EXTR を実行します。Rn:Rm の連結から lsb 位置のデータ幅分を取り出します。
def execute_extract(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    concat = (read_reg(state, f["n"], size) << size) | read_reg(state, f["m"], size)
    write_reg(state, f["d"], concat >> f["s"], size)
    return None


# --- 1ソース / 2ソース / 3ソース ---

# @intent:responsibility RBIT/REV16/REV32/REV/CLZ/CLS を実行します。
def execute_dp1(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    value = read_reg(state, f["n"], size)
    code = f["c"]
    if code == 0b000000:
        result = reverse_bits(value, size)
    elif code == 0b000001:
        result = reverse_bytes(value, size, 16)
    elif code == 0b000010:
        result = reverse_bytes(value, size, 32)
    elif code == 0b000011:
        result = reverse_bytes(value, size, 64)
    elif code == 0b000100:
        result = count_leading_zeros(value, size)
    elif code == 0b000101:
        result = count_leading_sign_bits(value, size)
    else:
        raise ValueError(f"Unsupported data-processing (1 source) opcode {code:#08b}")
    write_reg(state, f["d"], result, size)
    return None

# @intent:responsibility UDIV/SDIV/LSLV/LSRV/ASRV/RORV を実行します。
# @intent:rationale ゼロ除算は例外ではなく0を返し、シフト量はデータ幅の剰余を取ります。
def execute_dp2(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    op1 = read_reg(state, f["n"], size)
    op2 = read_reg(state, f["m"], size)
    code = f["c"]
    if code == 0b000010:
        result = op1 // op2 if op2 else 0
    elif code == 0b000011:
        dividend, divisor = sign_extend(op1, size), sign_extend(op2, size)
        if divisor == 0:
            result = 0
        else:
            quotient = abs(dividend) // abs(divisor)
            result = -quotient if (dividend < 0) != (divisor < 0) else quotient
    elif 0b001000 <= code <= 0b001011:
        result = shift_value(op1, code & 0b11, op2 % size, size)
    else:
        raise ValueError(f"Unsupported data-processing (2 source) opcode {code:#08b}")
    write_reg(state, f["d"], result, size)
    return None

# @intent:responsibility MADD/MSUB/SMADDL/SMSUBL/UMADDL/UMSUBL/SMULH/UMULH を実行します。
def execute_dp3(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = datasize(f)
    code = f["c"]
    if code == 0b000:
        product = read_reg(state, f["n"], size) * read_reg(state, f["m"], size)
        addend = read_reg(state, f["a"], size)
        result = addend - product if f["p"] else addend + product
        write_reg(state, f["d"], result, size)
        return None
    if code in (0b010, 0b110):
        op1, op2 = read_reg(state, f["n"]), read_reg(state, f["m"])
        if code == 0b010:
            op1, op2 = sign_extend(op1, 64), sign_extend(op2, 64)
        write_reg(state, f["d"], (op1 * op2) >> 64)
        return None
    op1, op2 = read_reg(state, f["n"], 32), read_reg(state, f["m"], 32)
    if code == 0b001:
        op1, op2 = sign_extend(op1, 32), sign_extend(op2, 32)
    elif code != 0b101:
        raise ValueError(f"Unsupported data-processing (3 source) opcode {code:#05b}")
    product = op1 * op2
    addend = read_reg(state, f["a"])
    write_reg(state, f["d"], addend - product if f["p"] else addend + product)
    return None


# --- PC相対 ---

# @intent:responsibility ADR(p=0)/ADRP(p=1) を実行します。
def execute_pcrel(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    offset = sign_extend((f["I"] << 2) | f["i"], 21)
    if f["p"]:
        result = (inst.address & ~0xFFF) + (offset << 12)
    else:
        result = inst.address + offset
    write_reg(state, f["d"], result)
    return None
