# a64_core_tracer/debugger/debugger.py
"""
デバッガモジュール。

コアエンジンの実行を制御し、ユーザーが指定した条件（ブレークポイント）、
停止命令、自己分岐、ステップ予算、実行時例外で実行を中断させる責務を負います。
停止要求は協調的なフラグで、命令の途中では決して中断しません。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional
import time

from a64_core_tracer.common.types import AccessKind
from a64_core_tracer.core.cpu import AbstractCpu
from a64_core_tracer.core.errors import MemoryAccessFault, UndecodableInstructionFault
from a64_core_tracer.core.snapshot import Snapshot

HALT_MNEMONIC = "hlt"

# @intent:responsibility ブレークポイントの条件タイプを定義します。
class BreakpointConditionType(Enum):
    PC_MATCH = "PC_MATCH"               # プログラムカウンタが特定のアドレスに一致
    MEMORY_READ = "MEMORY_READ"         # 特定のアドレスが読み込まれた
    MEMORY_WRITE = "MEMORY_WRITE"       # 特定のアドレスに書き込まれた
    REGISTER_VALUE = "REGISTER_VALUE"   # 特定のレジスタが特定の値になった
    REGISTER_CHANGE = "REGISTER_CHANGE" # 特定のレジスタの値が変化した

# @intent:responsibility ブレークポイントをトリガーする条件を定義します。
@dataclass(frozen=True)
class BreakpointCondition:
    """
    ブレークポイントがヒットするための条件を定義するデータクラス。
    """
    condition_type: BreakpointConditionType
    value: Optional[int] = None           # PC_MATCH, REGISTER_VALUEで使用
    address: Optional[int] = None         # MEMORY_READ, MEMORY_WRITEで使用
    register_name: Optional[str] = None   # REGISTER_VALUE, REGISTER_CHANGEで使用
    enabled: bool = True                  # 有効/無効状態

    # @intent:rationale ブレークポイント条件は、一度設定したら変更されないため、不変にします（frozen=True）。

# @intent:responsibility run() が停止した理由を表します。
class StopReason(Enum):
    BREAKPOINT = "BREAKPOINT"
    HALT = "HALT"
    SELF_BRANCH = "SELF_BRANCH"
    BUDGET = "BUDGET"
    FAULT = "FAULT"
    STOPPED = "STOPPED"

# @intent:responsibility コアエンジンの実行制御とブレークポイント管理を行います。
class Debugger:
    """
    CPUの実行を制御し、ブレークポイントの管理を行うクラス。
    """
    def __init__(self, cpu: AbstractCpu):
        self._cpu = cpu
        self._breakpoints: List[BreakpointCondition] = []
        self._running: bool = False
        self._previous_registers: Dict[str, int] = {}
        self._last_snapshot: Optional[Snapshot] = None
        self._last_fault: Optional[Exception] = None

    def add_breakpoint(self, condition: BreakpointCondition) -> None:
        """
        ブレークポイント条件を追加します。
        """
        if condition not in self._breakpoints:
            self._breakpoints.append(condition)

    def update_breakpoint(self, old_condition: BreakpointCondition, new_condition: BreakpointCondition) -> None:
        """
        既存のブレークポイントを更新します。
        """
        if old_condition in self._breakpoints:
            idx = self._breakpoints.index(old_condition)
            self._breakpoints[idx] = new_condition

    def remove_breakpoint(self, condition: BreakpointCondition) -> None:
        """
        ブレークポイント条件を削除します。
        """
        if condition in self._breakpoints:
            self._breakpoints.remove(condition)

    def get_breakpoints(self) -> List[BreakpointCondition]:
        """
        現在設定されている全てのブレークポイントのリストを返します。
        """
        return list(self._breakpoints)

    def get_last_snapshot(self) -> Optional[Snapshot]:
        return self._last_snapshot

    @property
    def last_fault(self) -> Optional[Exception]:
        return self._last_fault

    @property
    def is_running(self) -> bool:
        return self._running

    def _read_register(self, name: str) -> Optional[int]:
        try:
            return self._cpu.read_register(name)
        except ValueError:
            return None

    def _pc_breakpoint_at(self, pc: int) -> bool:
        return any(bp.enabled and bp.condition_type == BreakpointConditionType.PC_MATCH and bp.value == pc
                   for bp in self._breakpoints)

    def _check_other_breakpoints(self, snapshot: Snapshot) -> bool:
        """
        Snapshotに基づいてPC_MATCH以外のブレークポイントをチェックします。
        """
        for bp in self._breakpoints:
            if not bp.enabled:
                continue

            if bp.condition_type == BreakpointConditionType.MEMORY_READ:
                for access in snapshot.memory_accesses(AccessKind.READ):
                    if access.location <= bp.address < access.location + access.width:
                        return True
            elif bp.condition_type == BreakpointConditionType.MEMORY_WRITE:
                for access in snapshot.memory_accesses(AccessKind.WRITE):
                    if access.location <= bp.address < access.location + access.width:
                        return True
            elif bp.condition_type == BreakpointConditionType.REGISTER_VALUE:
                if bp.register_name and self._read_register(bp.register_name) == bp.value:
                    return True
            elif bp.condition_type == BreakpointConditionType.REGISTER_CHANGE:
                if bp.register_name:
                    current = self._read_register(bp.register_name)
                    previous = self._previous_registers.get(bp.register_name)
                    if current is not None and current != previous:
                        return True
        return False

    def _remember_registers(self) -> None:
        self._previous_registers = {
            bp.register_name: self._read_register(bp.register_name)
            for bp in self._breakpoints
            if bp.condition_type == BreakpointConditionType.REGISTER_CHANGE and bp.register_name
        }

    def step_instruction(self, notify: bool = True) -> Snapshot:
        """
        CPUを1命令分実行し、その結果のSnapshotを返します。
        """
        self._remember_registers()
        snapshot = self._cpu.step(notify)
        self._last_snapshot = snapshot
        return snapshot

    # @intent:responsibility CPUの実行を継続し、停止理由を返します。
    # @intent:rationale 停止フラグはステップの境界でのみ確認するため、停止後の状態は常に完了した最後の命令の直後です。
    def run(self, max_steps: Optional[int] = None) -> StopReason:
        """
        CPUの実行を継続します。`max_steps` を指定すると、その命令数で停止します。
        """
        self._running = True
        self._last_fault = None
        steps = 0
        first = True

        while self._running:
            time.sleep(0)

            # 開始位置のブレークポイントは無視して1命令進める
            current_pc = self._cpu.read_pc()
            if not first and self._pc_breakpoint_at(current_pc):
                self._running = False
                print(f"Breakpoint hit at PC: {current_pc:#x}")
                return StopReason.BREAKPOINT
            first = False

            if max_steps is not None and steps >= max_steps:
                self._running = False
                return StopReason.BUDGET

            try:
                snapshot = self.step_instruction()
            except UndecodableInstructionFault as fault:
                self._running = False
                self._last_fault = fault
                print(f"Undecodable instruction at PC: {fault.address:#x} ({fault.word:#010x})")
                return StopReason.FAULT
            except MemoryAccessFault as fault:
                self._running = False
                self._last_fault = fault
                print(f"Memory access fault at PC: {current_pc:#x}: {fault}")
                return StopReason.FAULT
            steps += 1

            if snapshot.instruction.mnemonic == HALT_MNEMONIC:
                self._running = False
                return StopReason.HALT

            if snapshot.old_pc == snapshot.new_pc:
                self._running = False
                return StopReason.SELF_BRANCH

            if self._check_other_breakpoints(snapshot):
                self._running = False
                print(f"Breakpoint hit at PC: {snapshot.new_pc:#x}")
                return StopReason.BREAKPOINT

        return StopReason.STOPPED

    # @intent:responsibility 外部のイベントループから1命令ずつ進めるためのジェネレータです。
    def iter_steps(self, max_steps: Optional[int] = None) -> Iterator[Snapshot]:
        self._running = True
        steps = 0
        while self._running and (max_steps is None or steps < max_steps):
            snapshot = self.step_instruction()
            steps += 1
            yield snapshot
            if snapshot.instruction.mnemonic == HALT_MNEMONIC or snapshot.old_pc == snapshot.new_pc:
                break
        self._running = False

    def stop(self) -> None:
        self._running = False
