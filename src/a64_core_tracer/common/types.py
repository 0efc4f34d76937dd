"""
共通の型定義を提供するモジュール。
プロジェクト全体で使用される汎用的な型エイリアスなどを定義します。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, NamedTuple, Union

# @intent:data_structure シンボル名とアドレスをマッピングする辞書の型エイリアス。
# Assembler, CPU, Debuggerなど複数のレイヤーで共通して使用されます。
SymbolMap = Dict[str, int]

# @intent:data_structure 単一のレジスタの表示定義。表示層が動的にフィールドを生成するために使用される。
class RegisterInfo(NamedTuple):
    name: str
    width: int  # ビット幅 (32 or 64)

# @intent:data_structure レジスタグループの表示定義。関連するレジスタ（例: "General", "Special"）をまとめる。
class RegisterLayoutInfo(NamedTuple):
    group_name: str
    registers: List[RegisterInfo]

# @intent:responsibility レジスタ・メモリアクセスの種別を定義します。
class AccessKind(Enum):
    READ = "READ"
    WRITE = "WRITE"

# @intent:data_structure 1回のレジスタまたはメモリアクセスの記録。
# locationはレジスタ名（"x5"）またはバイトアドレスです。
@dataclass(frozen=True)
class Access:
    kind: AccessKind
    location: Union[str, int]
    old_value: int
    new_value: int
    width: int = 8  # バイト数
