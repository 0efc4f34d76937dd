# a64_core_tracer/arch/a64/instructions/base.py
"""
A64命令実装用の共通ユーティリティ。

命令幅(sf)に応じたレジスタの読み書きと、NZCVの更新を提供します。
32ビット幅の書き込みは上位32ビットを0にします。
"""
from typing import Mapping

from a64_core_tracer.arch.a64.alu import mask
from a64_core_tracer.arch.a64.state import A64CpuState

# @intent:utility_function 一般形フィールドのsfビットからデータ幅(32/64)を求めます。
def datasize(fields: Mapping[str, int]) -> int:
    return 64 if fields.get("z", 1) else 32

# @intent:utility_function レジスタを読み出し、データ幅に切り詰めます。
def read_reg(state: A64CpuState, number: int, size: int = 64) -> int:
    return state.registers.read(number) & mask(size)

# @intent:utility_function レジスタへ書き込みます。32ビット幅では上位32ビットが0になります。
def write_reg(state: A64CpuState, number: int, value: int, size: int = 64) -> None:
    state.registers.write(number, value & mask(size))

# @intent:utility_function NZCVの4ビットをまとめて設定します。
def set_flags(state: A64CpuState, nzcv: int) -> None:
    state.nzcv = nzcv & 0b1111
