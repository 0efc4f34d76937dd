# tests/config/test_config.py
"""
a64_core_tracer.configパッケージ（ConfigLoader, SystemBuilder）の単体テスト。
"""
import pytest

from a64_core_tracer.arch.a64.cpu import A64Cpu
from a64_core_tracer.config.builder import SystemBuilder
from a64_core_tracer.config.loader import ConfigLoader
from a64_core_tracer.config.models import CpuConfig, CpuInitialState, SystemConfig

# @intent:test_suite YAML設定の解析と、設定からのシステム構築（プログラムロード・初期状態適用）を検証します。

CONFIG_YAML = """
architecture: A64
memory_size: 0x1000
cpu:
  endianness: little
program:
  path: program.s
  format: asm
initial_state:
  pc: 0x0
  registers:
    X1: 0x10
    sp: 0x800
"""


class TestConfigLoader:
    # @intent:test_case_defaults 空の設定ではデフォルト値が使用されることを検証します。
    def test_defaults(self):
        config = ConfigLoader().load_from_string("")
        assert config == SystemConfig()
        assert config.memory_size == 0x10000
        assert config.cpu == CpuConfig(word_size=64, instruction_width=4, endianness="little")
        assert config.program is None

    def test_load_from_file_resolves_relative_program(self, tmp_path):
        config_file = tmp_path / "system.yaml"
        config_file.write_text(CONFIG_YAML)
        config = ConfigLoader().load_from_file(str(config_file))
        assert config.memory_size == 0x1000
        assert config.program == str(tmp_path / "program.s")
        assert config.program_format == "asm"
        assert config.initial_state.registers == {"x1": 0x10, "sp": 0x800}

    def test_program_as_plain_string(self):
        config = ConfigLoader().load_from_string("program: /abs/code.hex\n")
        assert config.program == "/abs/code.hex"
        assert config.program_format == "asm"

    def test_bin_load_address(self):
        config = ConfigLoader().load_from_string(
            "program: {path: code.bin, format: BIN, load_address: '0x100'}\n")
        assert config.program_format == "bin"
        assert config.load_address == 0x100

    @pytest.mark.parametrize("value,expected", [
        (16, 16), ("0x10", 16), ("0X1f", 31), (" 42 ", 42),
    ])
    def test_parse_int(self, value, expected):
        assert ConfigLoader()._parse_int(value) == expected

    @pytest.mark.parametrize("value", [True, 1.5, None, "ten"])
    def test_parse_int_rejects(self, value):
        with pytest.raises(ValueError):
            ConfigLoader()._parse_int(value)

    def test_root_must_be_mapping(self):
        with pytest.raises(ValueError, match="Configuration root must be a mapping."):
            ConfigLoader().load_from_string("- 1\n- 2\n")


class TestSystemBuilder:
    # @intent:test_case_build_asm アセンブリプログラムがロードされ、シンボルと初期状態が適用されることを検証します。
    def test_build_from_assembly(self, tmp_path):
        (tmp_path / "program.s").write_text("start: add x0, x1, x1\n")
        config_file = tmp_path / "system.yaml"
        config_file.write_text(CONFIG_YAML)
        config = ConfigLoader().load_from_file(str(config_file))

        cpu, memory = SystemBuilder().build_system(config)

        assert isinstance(cpu, A64Cpu)
        assert memory.size == 0x1000
        assert cpu.memory is memory
        assert cpu.get_symbol_map() == {"start": 0}
        assert cpu.read_register("x1") == 0x10
        assert cpu.read_register("x28") == 0x800
        cpu.step()
        assert cpu.read_register("x0") == 0x20

    def test_build_without_program(self):
        config = SystemConfig(memory_size=0x100, initial_state=CpuInitialState(pc=0x40))
        cpu, memory = SystemBuilder().build_system(config)
        assert memory.read_bytes(0, 0x100) == bytes(0x100)
        assert cpu.read_pc() == 0x40

    def test_build_from_hex(self, tmp_path):
        hex_file = tmp_path / "program.hex"
        hex_file.write_text(":040000001F2003D5E5\n:00000001FF\n")
        config = SystemConfig(memory_size=0x100, program=str(hex_file), program_format="hex")
        cpu, _ = SystemBuilder().build_system(config)
        snapshot = cpu.step()
        assert snapshot.instruction.mnemonic == "nop"

    def test_build_from_binary(self, tmp_path):
        bin_file = tmp_path / "program.bin"
        bin_file.write_bytes(bytes.fromhex("D503201F"))
        config = SystemConfig(memory_size=0x100, program=str(bin_file), program_format="bin",
                              load_address=0x10, cpu=CpuConfig(endianness="big"))
        cpu, memory = SystemBuilder().build_system(config)
        assert memory.endianness == "big"
        cpu.write_register("pc", 0x10)
        assert cpu.step().instruction.mnemonic == "nop"

    def test_unsupported_program_format(self, tmp_path):
        config = SystemConfig(program=str(tmp_path / "program.elf"), program_format="elf")
        with pytest.raises(ValueError, match="Unsupported program format: elf"):
            SystemBuilder().build_system(config)

    # @intent:test_case_unknown_register 未知のレジスタ名は警告を出して無視されることを検証します。
    def test_unknown_register_warns(self, capsys):
        config = SystemConfig(memory_size=0x100,
                              initial_state=CpuInitialState(registers={"q9": 1, "x2": 3}))
        cpu, _ = SystemBuilder().build_system(config)
        assert "Warning: Unknown register 'q9' in initial state, ignored" in capsys.readouterr().out
        assert cpu.read_register("x2") == 3

    @pytest.mark.parametrize("config,message", [
        (SystemConfig(architecture="Z80"), "Unsupported architecture: Z80"),
        (SystemConfig(cpu=CpuConfig(word_size=32)), "Unsupported word size: 32"),
        (SystemConfig(cpu=CpuConfig(instruction_width=2)), "Unsupported instruction width: 2"),
        (SystemConfig(cpu=CpuConfig(endianness="middle")), "Unsupported endianness: middle"),
        (SystemConfig(memory_size=0), "Invalid memory size: 0"),
    ])
    def test_validation(self, config, message):
        with pytest.raises(ValueError, match=message):
            SystemBuilder().build_system(config)
