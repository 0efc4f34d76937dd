# a64_core_tracer/core/observer.py
"""
Core Layer (アクセス観測インターフェース)

step(notify=True) の実行中に発生したレジスタ・メモリアクセスを外部へ通知するためのインターフェースです。
アーキテクチャ状態以外の唯一の副作用経路になります。
"""
from abc import ABC, abstractmethod
from typing import List, Union

from a64_core_tracer.common.types import Access, AccessKind

# @intent:responsibility 外部の表示層などが実装するアクセス通知の受け口を定義します。
class AccessObserver(ABC):
    @abstractmethod
    def on_access(self, kind: AccessKind, location: Union[str, int], old_value: int, new_value: int) -> None:
        """
        1回のアクセスを受け取ります。locationはレジスタ名またはバイトアドレスです。
        """
        pass

# @intent:responsibility 通知されたアクセスを順に記録するだけの観測者です。デバッガやテストで使用します。
class RecordingObserver(AccessObserver):
    def __init__(self):
        self.accesses: List[Access] = []

    def on_access(self, kind: AccessKind, location: Union[str, int], old_value: int, new_value: int) -> None:
        self.accesses.append(Access(kind, location, old_value, new_value))

    def clear(self) -> None:
        self.accesses = []
