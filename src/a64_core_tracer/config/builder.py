# a64_core_tracer/config/builder.py
from typing import Tuple

from a64_core_tracer.common.types import SymbolMap
from a64_core_tracer.transport.memory import MemoryImage, ENDIANNESS
from a64_core_tracer.core.cpu import AbstractCpu
from a64_core_tracer.arch.a64.cpu import A64Cpu
from a64_core_tracer.loader.loader import AssemblyLoader, IntelHexLoader, RawBinaryLoader
from .models import SystemConfig, CpuConfig, CpuInitialState

SUPPORTED_ARCHITECTURES = ("A64",)

# @intent:responsibility システム構成（Config）に基づいて、MemoryImageとCPUを生成・接続し、プログラムと初期状態を適用します。
class SystemBuilder:
    def build_system(self, config: SystemConfig) -> Tuple[AbstractCpu, MemoryImage]:
        self._validate(config)
        memory = MemoryImage(config.memory_size, config.cpu.endianness)

        if config.architecture.upper() == "A64":
            cpu = A64Cpu(memory, config.cpu.instruction_width)
        else:
            raise ValueError(f"Unsupported architecture: {config.architecture}")

        # プログラムのロード
        if config.program:
            symbol_map, image = self.load_program(config)
            cpu.load_origin(image)
            cpu.set_symbol_map(symbol_map)

        # 初期状態の適用
        self.apply_initial_state(cpu, config.initial_state)

        return cpu, memory

    def _validate(self, config: SystemConfig) -> None:
        cpu_config: CpuConfig = config.cpu
        if config.architecture.upper() not in SUPPORTED_ARCHITECTURES:
            raise ValueError(f"Unsupported architecture: {config.architecture}")
        if cpu_config.word_size != 64:
            raise ValueError(f"Unsupported word size: {cpu_config.word_size}")
        if cpu_config.instruction_width != 4:
            raise ValueError(f"Unsupported instruction width: {cpu_config.instruction_width}")
        if cpu_config.endianness not in ENDIANNESS:
            raise ValueError(f"Unsupported endianness: {cpu_config.endianness}")
        if config.memory_size <= 0:
            raise ValueError(f"Invalid memory size: {config.memory_size}")

    # @intent:responsibility 設定されたプログラム形式に応じて原本イメージとシンボルマップを生成します。
    def load_program(self, config: SystemConfig) -> Tuple[SymbolMap, bytes]:
        fmt = config.program_format
        if fmt == "asm":
            return AssemblyLoader().load_assembly(
                config.program, config.memory_size, config.cpu.endianness, config.architecture.upper())
        image = bytearray(config.memory_size)
        if fmt == "hex":
            IntelHexLoader().load_intel_hex(config.program, image)
        elif fmt == "bin":
            RawBinaryLoader().load_raw(config.program, image, config.load_address)
        else:
            raise ValueError(f"Unsupported program format: {fmt}")
        return {}, bytes(image)

    # @intent:responsibility Configで定義された初期状態をCPUに適用します。
    def apply_initial_state(self, cpu: AbstractCpu, config_state: CpuInitialState):
        """
        CPUをリセットし、Configから指定された初期値を適用します。
        """
        cpu.reset()
        cpu.write_register("pc", config_state.pc)
        for reg_name, value in config_state.registers.items():
            try:
                cpu.write_register(reg_name, value)
            except ValueError:
                print(f"Warning: Unknown register '{reg_name}' in initial state, ignored")
