# a64_core_tracer/arch/a64/instructions/load.py
"""
ロード/ストア命令の実装。

アクセスサイズは一般形のsizeフィールドから 1 << size バイトとして求め、
opcフィールドで ストア(00) / ロード(01) / 64ビット符号拡張ロード(10) / 32ビット符号拡張ロード(11) を区別します。
"""
from typing import Optional

from a64_core_tracer.core.snapshot import DecodedInstruction
from a64_core_tracer.transport.memory import MemoryImage
from a64_core_tracer.arch.a64.alu import extend_value, mask, sign_extend
from a64_core_tracer.arch.a64.state import A64CpuState, MASK64
from .base import read_reg, write_reg

INDEX_POST = 0b01
INDEX_PRE = 0b11

# @intent:utility_function 1回のメモリ転送（ストアまたはロード）を行います。
def _transfer(state: A64CpuState, memory: MemoryImage, opc: int, size: int, address: int, t: int) -> None:
    if opc == 0b00:
        memory.write(address, size, read_reg(state, t, size * 8))
        return
    value = memory.read(address, size)
    if opc == 0b10:
        value = sign_extend(value, size * 8) & MASK64
    elif opc == 0b11:
        value = sign_extend(value, size * 8) & mask(32)
    write_reg(state, t, value)

# @intent:responsibility LDR/STR系 (unsigned offset) を実行します。オフセットはアクセスサイズ単位です。
def execute_ldst_uimm(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = 1 << f["x"]
    address = (read_reg(state, f["n"]) + f["I"] * size) & MASK64
    _transfer(state, memory, f["c"], size, address, f["t"])
    return None

# @intent:responsibility LDUR/STUR系、およびプリ/ポストインデックス形式を実行します。
def execute_ldst_imm9(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = 1 << f["x"]
    base = read_reg(state, f["n"])
    offset = sign_extend(f["I"], 9)
    address = base if f["w"] == INDEX_POST else (base + offset) & MASK64
    _transfer(state, memory, f["c"], size, address, f["t"])
    if f["w"] in (INDEX_POST, INDEX_PRE):
        write_reg(state, f["n"], base + offset)
    return None

# @intent:responsibility レジスタオフセット形式を実行します。S=1ならインデックスをアクセスサイズ分シフトします。
def execute_ldst_reg(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = 1 << f["x"]
    shift = f["x"] if f["S"] else 0
    offset = extend_value(state.registers.read(f["m"]), f["o"], shift, 64)
    address = (read_reg(state, f["n"]) + offset) & MASK64
    _transfer(state, memory, f["c"], size, address, f["t"])
    return None

# @intent:responsibility LDR (literal) / LDRSW (literal) を実行します。アドレスは命令位置からの語単位オフセットです。
def execute_ldr_literal(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    address = (inst.address + sign_extend(f["I"], 19) * 4) & MASK64
    if f["c"] == 0b10:
        _transfer(state, memory, 0b10, 4, address, f["t"])
    else:
        _transfer(state, memory, 0b01, 8 if f["c"] else 4, address, f["t"])
    return None

# @intent:responsibility LDP/STP を実行します。c=00は32ビット、c=10は64ビットのペアです。
def execute_ldstp(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    size = 8 if f["c"] & 0b10 else 4
    base = read_reg(state, f["n"])
    offset = sign_extend(f["I"], 7) * size
    address = base if f["w"] == INDEX_POST else (base + offset) & MASK64
    opc = 0b01 if f["L"] else 0b00
    _transfer(state, memory, opc, size, address, f["t"])
    _transfer(state, memory, opc, size, (address + size) & MASK64, f["u"])
    if f["w"] in (INDEX_POST, INDEX_PRE):
        write_reg(state, f["n"], base + offset)
    return None
