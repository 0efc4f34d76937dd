# a64_core_tracer/arch/a64/instructions/__init__.py
"""
A64命令セット実装パッケージ。
"""
from typing import Optional

from a64_core_tracer.core.snapshot import DecodedInstruction
from a64_core_tracer.transport.memory import MemoryImage
from a64_core_tracer.arch.a64.state import A64CpuState
from .maps import EXECUTE_MAP

# @intent:responsibility デコード済みA64命令を実行し、分岐先アドレス（分岐しなければNone）を返します。
def execute_instruction(inst: DecodedInstruction, state: A64CpuState, memory: MemoryImage) -> Optional[int]:
    """
    デコード時に束縛されたハンドラを優先し、無ければ実行操作名から引きます。
    """
    handler = inst.handler or EXECUTE_MAP[inst.entry.op]
    return handler(inst, state, memory)
