# a64_core_tracer/core/state.py
"""
Core Layer (CPU状態)

このモジュールは、CPUの基本的な状態（プログラムカウンタ）を保持するデータ構造を定義します。
"""
from dataclasses import dataclass

# @intent:responsibility CPUの状態を保持します。アーキテクチャ固有のレジスタはこれを拡張します。
@dataclass
class CpuState:
    """
    CPUの状態を保持するデータクラス。
    これは抽象的な基底状態であり、特定のCPUアーキテクチャに応じて拡張されます。
    """
    pc: int = 0x0000  # Program Counter
    # @intent:rationale リセット時のPCは0とし、初期値の上書きはConfig層（SystemBuilder）が行います。
