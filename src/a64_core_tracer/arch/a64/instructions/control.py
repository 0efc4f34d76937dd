# a64_core_tracer/arch/a64/instructions/control.py
"""
制御命令（分岐、サブルーチン呼び出し、ヒント、例外生成）の実装。

分岐するハンドラは分岐先アドレスを返し、分岐しない場合はNoneを返します。
PCの更新はCPUのstepが一括して行います。
"""
from typing import Optional

from a64_core_tracer.core.snapshot import DecodedInstruction
from a64_core_tracer.transport.memory import MemoryImage
from a64_core_tracer.arch.a64.alu import condition_holds, sign_extend
from a64_core_tracer.arch.a64.state import A64CpuState, MASK64
from .base import datasize, read_reg, write_reg

LINK_REGISTER = 30


def _relative(inst: DecodedInstruction, width: int) -> int:
    return (inst.address + sign_extend(inst.fields["I"], width) * 4) & MASK64

# @intent:responsibility B(p=0)/BL(p=1) を実行します。BLはx30に戻りアドレスを書き込みます。
def execute_branch_imm(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    if inst.fields["p"]:
        write_reg(state, LINK_REGISTER, inst.address + inst.length)
    return _relative(inst, 26)

# @intent:responsibility B.cond を実行します。条件が成立しなければ次の命令へ進みます。
def execute_branch_cond(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    if condition_holds(inst.fields["c"], state.nzcv):
        return _relative(inst, 19)
    return None

# @intent:responsibility CBZ(p=0)/CBNZ(p=1) を実行します。
def execute_compare_branch(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    is_zero = read_reg(state, f["t"], datasize(f)) == 0
    if is_zero != bool(f["p"]):
        return _relative(inst, 19)
    return None

# @intent:responsibility TBZ(p=0)/TBNZ(p=1) を実行します。bは b5:b40 を連結したビット番号です。
def execute_test_branch(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    bit_set = (read_reg(state, f["t"]) >> f["b"]) & 1
    if bit_set == f["p"]:
        return _relative(inst, 14)
    return None

# @intent:responsibility BR(c=00)/BLR(c=01)/RET(c=10) を実行します。
# @intent:rationale BLR x30 でも正しく動作するよう、リンクレジスタへの書き込みより先に分岐先を読み出します。
def execute_branch_reg(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    f = inst.fields
    target = read_reg(state, f["n"])
    if f["c"] == 0b01:
        write_reg(state, LINK_REGISTER, inst.address + inst.length)
    return target

# @intent:responsibility NOP を実行します。状態は変化しません。
def execute_hint(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    return None

# @intent:responsibility HLT を実行します。停止判定は実行制御（Debugger）が行うため、ここでは状態を変えません。
def execute_exception(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    return None
