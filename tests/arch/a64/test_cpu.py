# tests/arch/a64/test_cpu.py
"""
a64_core_tracer.arch.a64.cpuモジュールの単体テスト。
命令サイクル、スナップショット、アクセス通知、デコードキャッシュ、表示用APIを検証します。
"""
import pytest
from unittest.mock import patch

from a64_core_tracer.arch.a64.assembler import A64Assembler
from a64_core_tracer.arch.a64.cpu import A64Cpu
from a64_core_tracer.arch.a64.opcodes import A64_OPCODE_TABLE
from a64_core_tracer.common.types import AccessKind
from a64_core_tracer.core.errors import MemoryAccessFault, UndecodableInstructionFault
from a64_core_tracer.core.observer import RecordingObserver
from a64_core_tracer.transport.memory import MemoryImage

# @intent:test_suite A64 CPUの実行サイクルと観測機能を検証します。

MEMORY_SIZE = 0x1000


def _load(cpu, lines):
    assembler = A64Assembler(MEMORY_SIZE)
    symbols, image = assembler.assemble_lines(lines)
    assert assembler.errors == []
    cpu.load_origin(image)
    return symbols


class TestA64Cpu:
    @pytest.fixture
    def cpu(self):
        return A64Cpu(MemoryImage(MEMORY_SIZE))

    # @intent:test_case_add_scenario add x1, x2, x3 の1ステップでレジスタ・PC・スナップショットが更新されることを検証します。
    def test_add_step(self, cpu):
        _load(cpu, ["add x1, x2, x3"])
        cpu.write_register("x2", 5)
        cpu.write_register("x3", 7)

        snapshot = cpu.step()

        assert cpu.read_register("x1") == 12
        assert cpu.read_pc() == 4
        assert snapshot.old_pc == 0
        assert snapshot.new_pc == 4
        assert snapshot.instruction.mnemonic == "add"
        assert snapshot.metadata.step_count == 1
        assert snapshot.metadata.symbol_info == "add x1, x2, x3"

    def test_movz_step(self, cpu):
        _load(cpu, ["movz x0, #100"])
        for number in range(1, 31):
            cpu.write_register(f"x{number}", number * 3)
        cpu.write_register("nzcv", 0b1010)

        snapshot = cpu.step()

        assert cpu.read_register("x0") == 100
        assert snapshot.new_pc == snapshot.old_pc + 4
        for number in range(1, 31):
            assert cpu.read_register(f"x{number}") == number * 3
        assert cpu.read_register("nzcv") == 0b1010

    # @intent:test_case_decode_from_origin 作業用メモリへの書き込みはデコード対象の命令語を変えないことを検証します。
    def test_decode_reads_origin_image(self, cpu):
        _load(cpu, ["mov x0, #1"])
        cpu.memory.write(0, 4, 0xD2800040)  # mov x0, #2
        cpu.step()
        assert cpu.read_register("x0") == 1

    # @intent:test_case_undefined_shift 32ビット形式でシフト量が32以上の命令語は実行されずに例外となることを検証します。
    def test_undefined_shift_amount_faults(self, cpu):
        _load(cpu, [".word 0x0B92C4F5"])
        with pytest.raises(UndecodableInstructionFault):
            cpu.step()
        assert cpu.read_pc() == 0

    # @intent:test_case_self_branch b . はPCを変えず、old_pc == new_pc で検出できることを検証します。
    def test_self_branch(self, cpu):
        _load(cpu, ["b ."])
        snapshot = cpu.step()
        assert snapshot.old_pc == snapshot.new_pc == 0
        assert cpu.step_count == 1

    # @intent:test_case_undecodable デコードできない語は例外となり、状態は変更されないことを検証します。
    def test_undecodable_instruction(self, cpu):
        _load(cpu, ["mov x0, #1", ".word 0"])
        cpu.step()
        with pytest.raises(UndecodableInstructionFault) as info:
            cpu.step()
        assert info.value.address == 4
        assert info.value.word == 0
        assert cpu.read_pc() == 4
        assert cpu.read_register("x0") == 1
        assert cpu.step_count == 1

        cpu.reset()
        assert cpu.read_pc() == 0
        assert cpu.read_register("x0") == 0
        cpu.step()
        assert cpu.read_register("x0") == 1

    def test_misaligned_pc(self, cpu):
        cpu.write_register("pc", 2)
        with pytest.raises(MemoryAccessFault):
            cpu.step()

    def test_pc_outside_memory(self, cpu):
        cpu.write_register("pc", MEMORY_SIZE)
        with pytest.raises(MemoryAccessFault):
            cpu.step()

    def test_data_fault_leaves_pc(self, cpu):
        _load(cpu, ["ldr x0, [x1]"])
        cpu.write_register("x1", MEMORY_SIZE)
        with pytest.raises(MemoryAccessFault):
            cpu.step()
        assert cpu.read_pc() == 0

    # @intent:test_case_observer notify=Trueの場合だけ、アクセスが発生順に観測者へ通知されることを検証します。
    def test_observer_receives_accesses(self, cpu):
        _load(cpu, ["add x1, x2, x3", "add x1, x2, x3"])
        cpu.write_register("x2", 5)
        cpu.write_register("x3", 7)
        observer = RecordingObserver()
        cpu.attach_observer(observer)

        snapshot = cpu.step(notify=True)

        assert [(a.kind, a.location) for a in observer.accesses] == [
            (AccessKind.READ, "x2"), (AccessKind.READ, "x3"), (AccessKind.WRITE, "x1"),
        ]
        write = observer.accesses[2]
        assert (write.old_value, write.new_value) == (0, 12)
        assert len(snapshot.register_accesses()) == 3

        observer.clear()
        snapshot = cpu.step(notify=False)
        assert observer.accesses == []
        assert snapshot.accesses == []

    def test_memory_accesses_in_snapshot(self, cpu):
        _load(cpu, ["str x0, [x1, #8]"])
        cpu.write_register("x0", 0xAB)
        cpu.write_register("x1", 0x100)
        snapshot = cpu.step(notify=True)
        (write,) = snapshot.memory_accesses(AccessKind.WRITE)
        assert write.location == 0x108
        assert write.new_value == 0xAB
        assert write.width == 8

    def test_zero_register_not_reported(self, cpu):
        _load(cpu, ["cmp x0, #1"])
        snapshot = cpu.step(notify=True)
        assert [a.location for a in snapshot.register_accesses()] == ["x0"]

    # @intent:test_case_decode_cache リセット後もデコードキャッシュが再利用され、原本の差し替えで破棄されることを検証します。
    def test_decode_cache_survives_reset(self, cpu):
        _load(cpu, ["nop"])
        cpu.step()
        cpu.reset()
        with patch.object(cpu, "_decode", wraps=cpu._decode) as spy:
            cpu.step()
            spy.assert_not_called()

    def test_decode_cache_cleared_by_new_origin(self, cpu):
        _load(cpu, ["nop"])
        cpu.step()
        _load(cpu, ["mov x0, #5"])
        with patch.object(cpu, "_decode", wraps=cpu._decode) as spy:
            cpu.step()
            spy.assert_called_once()
        assert cpu.read_register("x0") == 5

    def test_reset_restores_memory(self, cpu):
        _load(cpu, ["str x0, [x1]"])
        cpu.write_register("x0", 0xFF)
        cpu.write_register("x1", 0x100)
        cpu.step()
        assert cpu.read_memory(0x100, 1) == b"\xff"
        cpu.reset()
        assert cpu.read_memory(0x100, 1) == b"\x00"
        assert cpu.step_count == 0

    # @intent:test_case_symbol_info シンボルマップが設定されていればラベルがsymbol_infoに付加されることを検証します。
    def test_symbol_info(self, cpu):
        symbols = _load(cpu, ["start: nop"])
        cpu.set_symbol_map(symbols)
        snapshot = cpu.step()
        assert snapshot.metadata.symbol_info == "start: nop"
        assert cpu.get_symbol_map() == {"start": 0}

    def test_register_names(self, cpu):
        cpu.write_register("x0", 0x1_2345_6789)
        assert cpu.read_register("w0") == 0x2345_6789
        cpu.write_register("sp", 0x800)
        assert cpu.read_register("x28") == 0x800
        cpu.write_register("xzr", 5)
        assert cpu.read_register("xzr") == 0
        with pytest.raises(ValueError, match="Unknown register"):
            cpu.read_register("q0")
        with pytest.raises(ValueError, match="Unknown register"):
            cpu.write_register("q0", 1)

    def test_register_map_and_layout(self, cpu):
        cpu.write_register("x30", 1)
        cpu.write_register("nzcv", 0b0110)
        register_map = cpu.get_register_map()
        assert len(register_map) == 33
        assert register_map["X30"] == 1
        assert register_map["NZCV"] == 0b0110
        assert cpu.get_flag_state() == {"N": False, "Z": True, "C": True, "V": False}
        layout = cpu.get_register_layout()
        assert [group.group_name for group in layout] == ["General", "Special"]
        assert len(layout[0].registers) == 31

    def test_disassemble(self, cpu):
        _load(cpu, ["add x1, x2, x3", "nop"])
        assert cpu.disassemble(0, 8) == [
            (0, "8B030041", "add x1, x2, x3"),
            (4, "D503201F", "nop"),
        ]

    def test_instruction_width_fixed(self):
        with pytest.raises(ValueError):
            A64Cpu(MemoryImage(MEMORY_SIZE), instruction_width=2)

    def test_table_shared_between_instances(self, cpu):
        other = A64Cpu(MemoryImage(MEMORY_SIZE))
        assert cpu.codec.table is other.codec.table is A64_OPCODE_TABLE
