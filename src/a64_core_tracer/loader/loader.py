# a64_core_tracer/loader/loader.py
"""
コードローダーモジュール。
Intel HEX、生バイナリ、アセンブリソースからメモリの原本イメージを生成します。
"""
from typing import List, Tuple

from a64_core_tracer.common.types import SymbolMap
from a64_core_tracer.arch.a64.assembler import A64Assembler


def _store_byte(image: bytearray, address: int, value: int, line_num: int) -> None:
    if not 0 <= address < len(image):
        raise ValueError(f"Intel HEX data at {address:#x} on line {line_num} outside memory image of size {len(image)}")
    image[address] = value


class IntelHexLoader:
    """
    Intel HEX形式のファイルを解析し、データを原本イメージにロードするローダー。
    """
    def load_intel_hex(self, file_path: str, image: bytearray) -> None:
        with open(file_path, 'r') as f:
            self.load_intel_hex_lines(f, image)

    # @intent:responsibility Intel HEXのレコード列を解析し、チェックサムを検証しながらイメージへ書き込みます。
    def load_intel_hex_lines(self, lines, image: bytearray) -> None:
        current_extended_linear_address = 0x0000

        for line_num, line in enumerate(lines, 1):
            line = line.strip()
            if not line or not line.startswith(':'):
                continue

            comment_start = line.find(';')
            if comment_start != -1:
                line = line[:comment_start].strip()

            if len(line) < 11:
                raise ValueError(f"Invalid Intel HEX record format on line {line_num}: Too short - {line}")

            try:
                data_length = int(line[1:3], 16)
                address_field = int(line[3:7], 16)
                record_type = int(line[7:9], 16)
                data_part_str = line[9:-2]
                checksum_field = int(line[-2:], 16)
            except ValueError as e:
                raise ValueError(f"Error parsing Intel HEX line {line_num}: {line} - {e}")

            if len(data_part_str) != data_length * 2:
                raise ValueError(f"Data length mismatch on line {line_num}")

            try:
                data = bytes.fromhex(data_part_str)
            except ValueError as e:
                raise ValueError(f"Error parsing Intel HEX line {line_num}: {line} - {e}")

            checksum_sum = data_length + (address_field >> 8) + (address_field & 0xFF) + record_type + sum(data)
            calculated_checksum = (~checksum_sum + 1) & 0xFF
            if calculated_checksum != checksum_field:
                raise ValueError(f"Checksum mismatch on line {line_num}: Calculated {calculated_checksum:02X}, Expected {checksum_field:02X}")

            if record_type == 0x00:
                load_address = (current_extended_linear_address + address_field) & 0xFFFFFFFF
                for i, byte_data in enumerate(data):
                    _store_byte(image, load_address + i, byte_data, line_num)
            elif record_type == 0x01:
                break
            elif record_type == 0x04:
                current_extended_linear_address = int(data_part_str, 16) << 16
            elif record_type == 0x02:
                current_extended_linear_address = int(data_part_str, 16) << 4
            elif record_type == 0x03 or record_type == 0x05:
                pass
            else:
                raise ValueError(f"Unknown Intel HEX record type {record_type:02X} on line {line_num}")


class RawBinaryLoader:
    """
    生のバイナリファイルを指定アドレスから原本イメージにロードするローダー。
    """
    def load_raw(self, file_path: str, image: bytearray, base_address: int = 0) -> None:
        with open(file_path, 'rb') as f:
            data = f.read()
        if base_address < 0 or base_address + len(data) > len(image):
            raise ValueError(
                f"Binary of {len(data)} bytes at {base_address:#x} does not fit memory image of size {len(image)}")
        image[base_address:base_address + len(data)] = data


class AssemblyLoader:
    """
    アセンブリソースコードをアセンブルし、シンボル情報と原本イメージを返すローダー。
    """
    def load_assembly(self, file_path: str, memory_size: int, endianness: str = "little",
                      architecture: str = "A64") -> Tuple[SymbolMap, bytes]:
        with open(file_path, 'r', encoding="utf-8") as f:
            lines = f.readlines()
        return self.assemble_source(lines, memory_size, endianness, architecture)

    # @intent:responsibility ソース行をアセンブルします。1行でもエラーがあれば全エラーをまとめてValueErrorで報告します。
    def assemble_source(self, lines: List[str], memory_size: int, endianness: str = "little",
                        architecture: str = "A64") -> Tuple[SymbolMap, bytes]:
        if architecture != "A64":
            raise ValueError(f"Unsupported architecture for assembly loading: {architecture}")
        assembler = A64Assembler(memory_size, endianness)
        symbol_map, image = assembler.assemble_lines(lines)
        if assembler.errors:
            details = "; ".join(f"line {number}: {error}" for number, error in assembler.errors)
            raise ValueError(f"Assembly failed with {len(assembler.errors)} error(s): {details}")
        return symbol_map, image
