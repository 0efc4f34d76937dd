# a64_core_tracer/core/errors.py
"""
Core Layer (例外定義)

アセンブル、デコード、実行、テーブル構築の各段階で送出される例外を定義します。
"""

# @intent:responsibility アセンブル時の構文・範囲エラーを、ソース上の位置情報と共に表現します。
# @intent:rationale 1行の誤りが後続行のアセンブルを妨げないよう、呼び出し側で捕捉可能な独立した例外とします。
class AsmSyntaxError(Exception):
    """
    アセンブル時の構文エラー。
    `start`/`end` はオペランド文字列内の文字オフセット（半開区間）を表します。
    """
    def __init__(self, message: str, start: int = 0, end: int = 0):
        super().__init__(message)
        self.message = message
        self.start = start
        self.end = end

    def __str__(self) -> str:
        return f"{self.message} (at {self.start}-{self.end})"


# @intent:responsibility どのオペコードエントリにも一致しない命令語をフェッチしたことを表します。
class UndecodableInstructionFault(Exception):
    """
    実行時のデコード失敗。現在の実行は継続できませんが、CPUインスタンスの状態は保持されます。
    """
    def __init__(self, address: int, word: int):
        super().__init__(f"Cannot decode instruction {word:#010x} at {address:#x}")
        self.address = address
        self.word = word


# @intent:responsibility ビットパターンやオペコードテーブルの定義不整合を表します。
class EncodingTableError(ValueError):
    pass


# @intent:responsibility メモリイメージの範囲外アクセス、または非整列PCからのフェッチを表します。
class MemoryAccessFault(IndexError):
    pass
