# tests/core/test_cpu.py
"""
a64_core_tracer.core.cpuモジュールの単体テスト。
"""
import pytest
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from a64_core_tracer.common.types import Access, AccessKind, RegisterInfo, RegisterLayoutInfo
from a64_core_tracer.core.cpu import AbstractCpu
from a64_core_tracer.core.errors import MemoryAccessFault, UndecodableInstructionFault
from a64_core_tracer.core.observer import RecordingObserver
from a64_core_tracer.core.snapshot import DecodedInstruction, Snapshot
from a64_core_tracer.core.state import CpuState
from a64_core_tracer.transport.memory import MemoryImage

# @intent:test_suite 抽象CPUの命令サイクル（テンプレートメソッド）、デコードキャッシュ、例外時の状態保持を検証します。

OUTPUT_ADDRESS = 0x0F


@dataclass
class DummyState(CpuState):
    acc: int = 0


# 1バイト命令のテスト用CPU。0x01: accを加算してOUTPUT_ADDRESSへ書く、0x02: アドレス0へ分岐、0x03: 自己分岐。
class DummyCpu(AbstractCpu):
    def __init__(self, memory: MemoryImage):
        self.decode_calls = 0
        self._tracking = False
        self._log: List[Access] = []
        super().__init__(memory, instruction_width=1)

    def _create_initial_state(self) -> CpuState:
        return DummyState()

    def _decode(self, word: int, address: int) -> Optional[DecodedInstruction]:
        self.decode_calls += 1
        names = {0x01: "inc", 0x02: "jmp", 0x03: "stay"}
        if word not in names:
            return None
        return DecodedInstruction(address, word, names[word], None, {}, {}, length=1)

    def _execute(self, instruction: DecodedInstruction) -> Optional[int]:
        if instruction.mnemonic == "jmp":
            return 0
        if instruction.mnemonic == "stay":
            return instruction.address
        old = self._state.acc
        self._state.acc = old + 1
        if self._tracking:
            self._log.append(Access(AccessKind.WRITE, "acc", old, old + 1))
        self._memory.write(OUTPUT_ADDRESS, 1, self._state.acc)
        return None

    def _set_register_tracking(self, enabled: bool) -> None:
        self._tracking = enabled

    def _take_register_activity(self) -> List[Access]:
        log, self._log = self._log, []
        return log

    def format_instruction(self, instruction: DecodedInstruction) -> str:
        return instruction.mnemonic

    def read_register(self, name: str) -> int:
        if name == "pc":
            return self._state.pc
        if name == "acc":
            return self._state.acc
        raise ValueError(f"Unknown register: {name}")

    def write_register(self, name: str, value: int) -> None:
        if name == "pc":
            self._state.pc = value
        elif name == "acc":
            self._state.acc = value
        else:
            raise ValueError(f"Unknown register: {name}")

    def get_register_map(self) -> Dict[str, int]:
        return {"PC": self._state.pc, "ACC": self._state.acc}

    def get_register_layout(self) -> List[RegisterLayoutInfo]:
        return [RegisterLayoutInfo("Test Group", [RegisterInfo("ACC", 8)])]

    def get_flag_state(self) -> Dict[str, bool]:
        return {}

    def disassemble(self, start_addr: int, length: int) -> List[Tuple[int, str, str]]:
        return []


class TestCpuState:
    def test_cpu_state_default(self):
        assert CpuState().pc == 0

    def test_cpu_state_mutability(self):
        state = CpuState(pc=0x1000)
        state.pc = 0x2000
        assert state.pc == 0x2000


class TestAbstractCpu:
    @pytest.fixture
    def cpu(self):
        return DummyCpu(MemoryImage(0x10))

    def _load(self, cpu, program: bytes):
        cpu.load_origin(program + bytes(0x10 - len(program)))

    # @intent:test_case_step 1ステップでPCが命令長だけ進み、スナップショットが生成されることを検証します。
    def test_step(self, cpu):
        self._load(cpu, bytes([0x01, 0x01]))
        snapshot = cpu.step()
        assert isinstance(snapshot, Snapshot)
        assert (snapshot.old_pc, snapshot.new_pc) == (0, 1)
        assert snapshot.metadata.step_count == 1
        assert snapshot.metadata.symbol_info == "inc"
        assert snapshot.accesses == []
        assert cpu.read_register("acc") == 1
        assert cpu.read_memory(OUTPUT_ADDRESS, 1) == b"\x01"

    def test_branch_target(self, cpu):
        self._load(cpu, bytes([0x01, 0x02]))
        cpu.step()
        snapshot = cpu.step()
        assert (snapshot.old_pc, snapshot.new_pc) == (1, 0)
        assert cpu.step_count == 2

    def test_self_branch_keeps_pc(self, cpu):
        self._load(cpu, bytes([0x03]))
        snapshot = cpu.step()
        assert snapshot.old_pc == snapshot.new_pc == 0

    # @intent:test_case_notify notify=Trueの場合、レジスタ→メモリの順にアクセスが記録・通知されることを検証します。
    def test_notify(self, cpu):
        self._load(cpu, bytes([0x01, 0x01]))
        observer = RecordingObserver()
        cpu.attach_observer(observer)
        snapshot = cpu.step(notify=True)
        assert [(a.kind, a.location) for a in snapshot.accesses] == [
            (AccessKind.WRITE, "acc"), (AccessKind.WRITE, OUTPUT_ADDRESS),
        ]
        assert len(observer.accesses) == 2
        assert snapshot.memory_accesses(AccessKind.WRITE)[0].new_value == 1
        assert snapshot.register_accesses(AccessKind.READ) == []
        assert cpu.memory.tracking is False

        cpu.attach_observer(None)
        cpu.step(notify=True)
        assert len(observer.accesses) == 2

    # @intent:test_case_undecodable デコード失敗時はPC・ステップ数が変わらず、例外にアドレスと命令語が含まれることを検証します。
    def test_undecodable_keeps_state(self, cpu):
        self._load(cpu, bytes([0x01, 0xEE]))
        cpu.step()
        with pytest.raises(UndecodableInstructionFault) as info:
            cpu.step()
        assert (info.value.address, info.value.word) == (1, 0xEE)
        assert cpu.read_pc() == 1
        assert cpu.step_count == 1

    # @intent:test_case_decode_from_origin 命令語は原本から読み出され、作業用メモリへの書き込みはデコードに影響しないことを検証します。
    def test_decode_reads_origin(self, cpu):
        self._load(cpu, bytes([0x01, 0xEE]))
        cpu.memory.write(1, 1, 0x01)
        cpu.step()
        with pytest.raises(UndecodableInstructionFault) as info:
            cpu.step()
        assert info.value.word == 0xEE

        self._load(cpu, bytes([0x01]))
        cpu.memory.write(0, 1, 0xEE)
        cpu.step()
        assert cpu.read_register("acc") == 1

    def test_failed_decode_is_not_cached(self, cpu):
        self._load(cpu, bytes([0xEE]))
        for _ in range(2):
            with pytest.raises(UndecodableInstructionFault):
                cpu.step()
        assert cpu.decode_calls == 2

    def test_pc_out_of_bounds(self, cpu):
        cpu.write_register("pc", 0x10)
        with pytest.raises(MemoryAccessFault):
            cpu.step()

    # @intent:test_case_decode_cache 同じアドレスの命令は一度だけデコードされ、リセット後も再利用されることを検証します。
    def test_decode_cache(self, cpu):
        self._load(cpu, bytes([0x01, 0x02]))
        for _ in range(6):
            cpu.step()
        assert cpu.decode_calls == 2
        cpu.reset()
        cpu.step()
        assert cpu.decode_calls == 2

        self._load(cpu, bytes([0x03]))
        cpu.step()
        assert cpu.decode_calls == 3

    def test_cache_resized_with_origin(self, cpu):
        cpu.load_origin(bytes(0x20))
        cpu.write_register("pc", 0x18)
        with pytest.raises(UndecodableInstructionFault):
            cpu.step()

    def test_reset(self, cpu):
        self._load(cpu, bytes([0x01]))
        cpu.step()
        cpu.reset()
        assert cpu.read_pc() == 0
        assert cpu.read_register("acc") == 0
        assert cpu.step_count == 0
        assert cpu.read_memory(OUTPUT_ADDRESS, 1) == b"\x00"

    def test_symbol_map(self, cpu):
        self._load(cpu, bytes([0x01]))
        cpu.set_symbol_map({"entry": 0})
        assert cpu.get_symbol_map() == {"entry": 0}
        assert cpu.step().metadata.symbol_info == "entry: inc"

    def test_invalid_instruction_width(self):
        class ZeroWidthCpu(DummyCpu):
            def __init__(self, memory):
                AbstractCpu.__init__(self, memory, instruction_width=0)

        with pytest.raises(ValueError):
            ZeroWidthCpu(MemoryImage(4))

    def test_get_state(self, cpu):
        state = cpu.get_state()
        assert isinstance(state, DummyState)
        state.pc = 3
        assert cpu.read_pc() == 3
