# a64_core_tracer/transport/memory.py
"""
Transport Layer (メモリイメージ)

このモジュールは、バイト単位でアドレス指定可能なメモリイメージを提供します。
作業用バッファはリセットのたびに不変の「原本」イメージから複製され、
原本のサイズが変わった場合にのみ再確保されます。
"""
from typing import List

from a64_core_tracer.common.types import Access, AccessKind
from a64_core_tracer.core.errors import MemoryAccessFault

ENDIANNESS = ("little", "big")

# @intent:responsibility 原本イメージと作業用バッファを管理し、多バイトの読み書きとアクセス記録を提供します。
# @intent:rationale アクセス記録は tracking が有効な間だけ行い、通知を要求されないステップのコストを抑えます。
class MemoryImage:
    """
    バイトアドレス指定のメモリ。多バイトアクセスは既定でリトルエンディアンです。
    """
    # @intent:pre-condition sizeは正の整数、endiannessは "little" または "big" である必要があります。
    def __init__(self, size: int, endianness: str = "little"):
        if not isinstance(size, int) or size <= 0:
            raise ValueError("Memory size must be a positive integer.")
        if endianness not in ENDIANNESS:
            raise ValueError(f"Unsupported endianness: {endianness}")
        self._endianness = endianness
        self._origin: bytes = bytes(size)
        self._memory = bytearray(size)
        self._activity_log: List[Access] = []
        self.tracking: bool = False

    @property
    def size(self) -> int:
        return len(self._memory)

    @property
    def endianness(self) -> str:
        return self._endianness

    @property
    def origin(self) -> bytes:
        return self._origin

    # @intent:responsibility 新しい原本イメージを設定し、作業用バッファへ反映します。
    def load_origin(self, image: bytes) -> None:
        if not image:
            raise ValueError("Origin image must not be empty.")
        self._origin = bytes(image)
        self.reset()

    # @intent:responsibility 作業用バッファを原本から複製し直します。サイズが同じならバッファを再利用します。
    def reset(self) -> None:
        if len(self._memory) != len(self._origin):
            self._memory = bytearray(self._origin)
        else:
            self._memory[:] = self._origin
        self._activity_log = []

    def _check_range(self, address: int, width: int) -> None:
        if address < 0 or address + width > len(self._memory):
            raise MemoryAccessFault(
                f"Address {address:#x} (+{width}) out of bounds for memory of size {len(self._memory)}.")

    # @intent:responsibility アクセスを記録せずに値を読み出します（フェッチ、逆アセンブル、表示用）。
    def peek(self, address: int, width: int = 1) -> int:
        self._check_range(address, width)
        return int.from_bytes(self._memory[address:address + width], self._endianness)

    # @intent:responsibility 原本イメージから値を読み出します。命令のデコードはこちらを使用します。
    def peek_origin(self, address: int, width: int = 1) -> int:
        if address < 0 or address + width > len(self._origin):
            raise MemoryAccessFault(
                f"Address {address:#x} (+{width}) out of bounds for origin of size {len(self._origin)}.")
        return int.from_bytes(self._origin[address:address + width], self._endianness)

    # @intent:responsibility 指定アドレスから `width` バイトの値を読み出します。
    def read(self, address: int, width: int = 1) -> int:
        value = self.peek(address, width)
        if self.tracking:
            self._activity_log.append(Access(AccessKind.READ, address, value, value, width))
        return value

    # @intent:responsibility 指定アドレスへ `width` バイトの値を書き込みます。値は幅に切り詰められます。
    def write(self, address: int, width: int, value: int) -> None:
        self._check_range(address, width)
        value &= (1 << (width * 8)) - 1
        if self.tracking:
            old = int.from_bytes(self._memory[address:address + width], self._endianness)
            self._activity_log.append(Access(AccessKind.WRITE, address, old, value, width))
        self._memory[address:address + width] = value.to_bytes(width, self._endianness)

    # @intent:responsibility 表示層向けに生のバイト列を返します。
    def read_bytes(self, address: int, length: int) -> bytes:
        self._check_range(address, length)
        return bytes(self._memory[address:address + length])

    def get_and_clear_activity_log(self) -> List[Access]:
        """
        現在のアクセスログを返し、内部ログをクリアします。
        """
        log = self._activity_log
        self._activity_log = []
        return log
