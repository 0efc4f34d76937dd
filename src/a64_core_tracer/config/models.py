# a64_core_tracer/config/models.py
from dataclasses import dataclass, field
from typing import Dict, Optional

@dataclass
class CpuConfig:
    word_size: int = 64
    instruction_width: int = 4
    endianness: str = "little"  # "little", "big"

@dataclass
class CpuInitialState:
    pc: int = 0x0000
    registers: Dict[str, int] = field(default_factory=dict)

@dataclass
class SystemConfig:
    architecture: str = "A64"
    memory_size: int = 0x10000
    cpu: CpuConfig = field(default_factory=CpuConfig)
    program: Optional[str] = None       # プログラムファイルのパス（設定ファイルからの相対パス可）
    program_format: str = "asm"         # "asm", "hex", "bin"
    load_address: int = 0x0000          # "bin" 形式のロード先
    initial_state: CpuInitialState = field(default_factory=CpuInitialState)
