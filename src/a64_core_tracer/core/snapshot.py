# a64_core_tracer/core/snapshot.py
"""
デコード済み命令と実行結果の不変スナップショット

このモジュールは、デコードキャッシュに格納される命令記述と、
1ステップの実行結果（旧PC・新PC・アクセス記録）を表す不変のデータ構造を定義します。
"""
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional

from a64_core_tracer.common.types import Access, AccessKind


# @intent:responsibility デコードされた1命令を記録します。初回フェッチ時に生成され、キャッシュに保持されます。
@dataclass(frozen=True)
class DecodedInstruction:
    """
    アドレス、命令語、解決されたニーモニック、実行用フィールド、レジスタの役割、実行ハンドラを保持します。
    `fields` は実行操作の一般形から抽出した値、`registers` は役割名からレジスタ番号への対応です。
    """
    address: int
    word: int
    mnemonic: str
    entry: Any  # OpcodeEntry
    fields: Mapping[str, int]
    registers: Mapping[str, int]
    handler: Optional[Callable] = None
    length: int = 4

# @intent:responsibility 実行に関するメタデータを記録します。
@dataclass(frozen=True)
class Metadata:
    """
    実行に関するメタデータ（累計ステップ数、シンボル情報など）を記録するデータクラス。
    """
    step_count: int
    symbol_info: Optional[str] = None  # 例: "loop: add"

# @intent:responsibility 1ステップの実行結果を不変に記録します。
@dataclass(frozen=True)
class Snapshot:
    """
    1ステップの実行結果。呼び出し側は old_pc == new_pc で自己分岐を検出できます。
    """
    old_pc: int
    new_pc: int
    instruction: DecodedInstruction
    metadata: Metadata
    accesses: List[Access] = field(default_factory=list)

    # @intent:rationale Snapshotは不変であるべきという原則に従い、frozen=Trueを設定。
    #                  リストなどのミュータブルなフィールドはdefault_factoryを使用します。

    def memory_accesses(self, kind: Optional[AccessKind] = None) -> List[Access]:
        return [a for a in self.accesses
                if isinstance(a.location, int) and (kind is None or a.kind == kind)]

    def register_accesses(self, kind: Optional[AccessKind] = None) -> List[Access]:
        return [a for a in self.accesses
                if isinstance(a.location, str) and (kind is None or a.kind == kind)]
