# a64_core_tracer/arch/a64/disassembler.py
"""
A64 Disassembler

メモリ上の命令語を解析し、A64のアセンブリ言語に変換します。
Instruction Layerと同じコーデックを再利用し、メモリはpeek（ログなし読み込み）で参照するため
アクセスログを汚しません。
"""
from typing import List, Optional, Tuple

from a64_core_tracer.core.snapshot import DecodedInstruction
from a64_core_tracer.transport.memory import MemoryImage
from a64_core_tracer.arch.a64.codec import InstructionCodec

INSTRUCTION_WIDTH = 4

_default_codec: Optional[InstructionCodec] = None


def _codec() -> InstructionCodec:
    global _default_codec
    if _default_codec is None:
        _default_codec = InstructionCodec()
    return _default_codec

# @intent:responsibility デコード済み命令を "mnemonic op1, op2" 形式の文字列にします。
def format_decoded(instruction: DecodedInstruction, codec: Optional[InstructionCodec] = None) -> str:
    codec = codec or _codec()
    operands = codec.format_operands(instruction.entry, instruction.word, instruction.address)
    if operands:
        return f"{instruction.mnemonic} {', '.join(operands)}"
    return instruction.mnemonic

# @intent:responsibility 命令語1つを表示用文字列に変換します。デコードできない語は .word 表記です。
def format_instruction(word: int, address: int = 0, codec: Optional[InstructionCodec] = None) -> str:
    codec = codec or _codec()
    instruction = codec.decode(word, address)
    if instruction is None:
        return f".word {word:#010x}"
    return format_decoded(instruction, codec)

# @intent:responsibility 指定されたメモリ範囲を逆アセンブルし、表示用データを生成します。
def disassemble(memory: MemoryImage, start_addr: int, length: int,
                codec: Optional[InstructionCodec] = None) -> List[Tuple[int, str, str]]:
    """
    指定された範囲のメモリを逆アセンブルします。

    Returns:
        List of (address, hex_word, text) tuples.
    """
    result = []
    current_addr = start_addr - (start_addr % INSTRUCTION_WIDTH)
    end_addr = start_addr + length

    while current_addr < end_addr:
        # メモリ境界チェック
        if current_addr + INSTRUCTION_WIDTH > memory.size:
            break
        word = memory.peek(current_addr, INSTRUCTION_WIDTH)
        result.append((current_addr, f"{word:08X}", format_instruction(word, current_addr, codec)))
        current_addr += INSTRUCTION_WIDTH

    return result
