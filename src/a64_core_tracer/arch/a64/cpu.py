# a64_core_tracer/arch/a64/cpu.py
"""
A64 CPUエミュレーションの中心モジュール。
"""
from typing import Dict, List, Optional, Tuple

from a64_core_tracer.common.types import Access, RegisterLayoutInfo, RegisterInfo
from a64_core_tracer.core.cpu import AbstractCpu
from a64_core_tracer.core.snapshot import DecodedInstruction
from a64_core_tracer.transport.memory import MemoryImage
from a64_core_tracer.arch.a64.codec import InstructionCodec
from a64_core_tracer.arch.a64.state import (
    A64CpuState, GENERAL_REGISTER_COUNT, MASK64, REGISTER_NAMES,
)
from a64_core_tracer.arch.a64.instructions import EXECUTE_MAP, execute_instruction
from a64_core_tracer.arch.a64 import disassembler

INSTRUCTION_WIDTH = 4

# @intent:responsibility A64 CPUの具体的なエミュレーションロジック（デコード、実行、表示用API）を提供します。
class A64Cpu(AbstractCpu):
    """
    A64 CPUをエミュレートするクラス。
    """
    # @intent:responsibility A64Cpuを初期化します。コーデックには実行ハンドラを束縛します。
    # @intent:pre-condition A64の命令幅は4バイト固定です。
    def __init__(self, memory: MemoryImage, instruction_width: int = INSTRUCTION_WIDTH,
                 codec: Optional[InstructionCodec] = None):
        if instruction_width != INSTRUCTION_WIDTH:
            raise ValueError(f"A64 instruction width must be {INSTRUCTION_WIDTH} bytes.")
        self._codec = codec or InstructionCodec(handlers=EXECUTE_MAP)
        super().__init__(memory, instruction_width)

    @property
    def codec(self) -> InstructionCodec:
        return self._codec

    # @intent:responsibility A64の初期状態（全レジスタ0、PC=0、NZCV=0）を生成します。
    def _create_initial_state(self) -> A64CpuState:
        return A64CpuState()

    def _decode(self, word: int, address: int) -> Optional[DecodedInstruction]:
        return self._codec.decode(word, address)

    def _execute(self, instruction: DecodedInstruction) -> Optional[int]:
        return execute_instruction(instruction, self._state, self._memory)

    def _set_register_tracking(self, enabled: bool) -> None:
        self._state.registers.tracking = enabled

    def _take_register_activity(self) -> List[Access]:
        return self._state.registers.get_and_clear_activity_log()

    def format_instruction(self, instruction: DecodedInstruction) -> str:
        return disassembler.format_decoded(instruction, self._codec)

    # @intent:responsibility 名前（x0-x30, w0-w30, xzr, sp, fp, lr, pc, nzcv）でレジスタ値を読み出します。
    def read_register(self, name: str) -> int:
        key = name.lower()
        if key == "pc":
            return self._state.pc
        if key == "nzcv":
            return self._state.nzcv
        if key not in REGISTER_NAMES:
            raise ValueError(f"Unknown register: {name}")
        number, wide = REGISTER_NAMES[key]
        value = self._state.registers.peek(number)
        return value if wide else value & 0xFFFFFFFF

    # @intent:responsibility 名前でレジスタ値を書き込みます（初期状態の適用用、アクセス記録なし）。
    def write_register(self, name: str, value: int) -> None:
        key = name.lower()
        if key == "pc":
            self._state.pc = value & self.pc_mask
            return
        if key == "nzcv":
            self._state.nzcv = value & 0b1111
            return
        if key not in REGISTER_NAMES:
            raise ValueError(f"Unknown register: {name}")
        number, wide = REGISTER_NAMES[key]
        registers = self._state.registers
        tracking = registers.tracking
        registers.tracking = False
        registers.write(number, value & (MASK64 if wide else 0xFFFFFFFF))
        registers.tracking = tracking

    # @intent:responsibility 表示用に、現在のレジスタ値を辞書形式で提供します。
    def get_register_map(self) -> Dict[str, int]:
        s = self._state
        values = s.registers.values()
        register_map = {f"X{number}": values[number] for number in range(GENERAL_REGISTER_COUNT)}
        register_map["PC"] = s.pc
        register_map["NZCV"] = s.nzcv
        return register_map

    # @intent:responsibility レジスタ表示レイアウト（グループ化）を定義します。
    def get_register_layout(self) -> List[RegisterLayoutInfo]:
        return [
            RegisterLayoutInfo("General", [
                RegisterInfo(f"X{number}", 64) for number in range(GENERAL_REGISTER_COUNT)
            ]),
            RegisterLayoutInfo("Special", [
                RegisterInfo("PC", 64), RegisterInfo("NZCV", 4)
            ]),
        ]

    # @intent:responsibility 表示用に、現在のフラグ状態を辞書形式で提供します。
    def get_flag_state(self) -> Dict[str, bool]:
        s = self._state
        return {"N": s.flag_n, "Z": s.flag_z, "C": s.flag_c, "V": s.flag_v}

    # @intent:responsibility 指定範囲のメモリを逆アセンブルします。
    def disassemble(self, start_addr: int, length: int) -> List[Tuple[int, str, str]]:
        return disassembler.disassemble(self._memory, start_addr, length, self._codec)
