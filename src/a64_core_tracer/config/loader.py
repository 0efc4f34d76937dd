# a64_core_tracer/config/loader.py
import os
import yaml
from typing import Dict, Any
from .models import SystemConfig, CpuConfig, CpuInitialState

class ConfigLoader:
    def load_from_file(self, path: str) -> SystemConfig:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        config = self._parse_config(data or {})
        if config.program and not os.path.isabs(config.program):
            config.program = os.path.join(os.path.dirname(os.path.abspath(path)), config.program)
        return config

    def load_from_string(self, text: str) -> SystemConfig:
        return self._parse_config(yaml.safe_load(text) or {})

    def _parse_config(self, data: Dict[str, Any]) -> SystemConfig:
        if not isinstance(data, dict):
            raise ValueError("Configuration root must be a mapping.")
        arch = data.get("architecture", "A64")

        # Parse CPU
        cpu_data = data.get("cpu", {}) or {}
        cpu = CpuConfig(
            word_size=self._parse_int(cpu_data.get("word_size", 64)),
            instruction_width=self._parse_int(cpu_data.get("instruction_width", 4)),
            endianness=str(cpu_data.get("endianness", "little")).lower(),
        )

        # Parse Program
        program_data = data.get("program", {}) or {}
        if isinstance(program_data, str):
            program_data = {"path": program_data}

        # Parse Initial State
        initial_state_data = data.get("initial_state", {}) or {}
        registers = {
            str(name).lower(): self._parse_int(value)
            for name, value in (initial_state_data.get("registers", {}) or {}).items()
        }
        initial_state = CpuInitialState(
            pc=self._parse_int(initial_state_data.get("pc", 0)),
            registers=registers,
        )

        return SystemConfig(
            architecture=arch,
            memory_size=self._parse_int(data.get("memory_size", 0x10000)),
            cpu=cpu,
            program=program_data.get("path"),
            program_format=str(program_data.get("format", "asm")).lower(),
            load_address=self._parse_int(program_data.get("load_address", 0)),
            initial_state=initial_state,
        )

    def _parse_int(self, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError(f"Invalid integer format: {value}")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            value = value.strip()
            if value.lower().startswith("0x"):
                return int(value, 16)
            return int(value)
        raise ValueError(f"Invalid integer format: {value}")
