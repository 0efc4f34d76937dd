# a64_core_tracer/core/cpu.py
"""
Core Layer (抽象CPU)

このモジュールは、CPUの基本的な状態管理と命令サイクルの駆動に関する抽象化を提供します。
具体的な命令の振る舞いはInstruction Layerに移譲されます。
フェッチはアドレスごとのデコードキャッシュを経由し、キャッシュは原本イメージが変わるまで保持されます。
"""
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Tuple

from a64_core_tracer.transport.memory import MemoryImage
from a64_core_tracer.core.errors import MemoryAccessFault, UndecodableInstructionFault
from a64_core_tracer.core.observer import AccessObserver
from a64_core_tracer.core.snapshot import DecodedInstruction, Snapshot, Metadata
from a64_core_tracer.core.state import CpuState
from a64_core_tracer.common.types import Access, SymbolMap, RegisterLayoutInfo

# @intent:responsibility 抽象CPUの基本機能とインターフェースを定義します。
class AbstractCpu(ABC):
    """
    全てのCPUエミュレーションの基底となる抽象クラス。
    MemoryImageとのインターフェース、基本的な状態管理、命令サイクルの抽象化を提供します。
    """
    pc_mask: int = (1 << 64) - 1

    # @intent:responsibility CPUの状態とメモリへの参照を初期化します。
    # @intent:pre-condition `memory`は有効なMemoryImage、`instruction_width`は正の整数である必要があります。
    def __init__(self, memory: MemoryImage, instruction_width: int = 4):
        if instruction_width <= 0:
            raise ValueError("Instruction width must be a positive integer.")
        self._memory = memory
        self._instruction_width = instruction_width
        self._state: CpuState = self._create_initial_state()
        self._step_count: int = 0
        self._symbol_map: SymbolMap = {}
        self._reverse_symbol_map: Dict[int, str] = {}
        self._observer: Optional[AccessObserver] = None
        self._cache_memory_size = memory.size
        self._decode_cache: List[Optional[DecodedInstruction]] = self._new_decode_cache()
        # @intent:rationale Stateオブジェクトの直接操作を避けるため、protectedな命名規則を採用。
        #                  外部からのアクセスは`get_state()`メソッドを介して行う。

    def _new_decode_cache(self) -> List[Optional[DecodedInstruction]]:
        return [None] * (self._memory.size // self._instruction_width)

    @property
    def memory(self) -> MemoryImage:
        return self._memory

    @property
    def step_count(self) -> int:
        return self._step_count

    # @intent:responsibility シンボルマップを設定します。
    def set_symbol_map(self, symbol_map: SymbolMap) -> None:
        """
        シンボルマップ（名前とアドレスの対応表）を設定します。
        """
        self._symbol_map = symbol_map
        # 逆引きマップを作成して、アドレスからラベルを素早く引けるようにする
        self._reverse_symbol_map = {addr: name for name, addr in symbol_map.items()}

    def get_symbol_map(self) -> SymbolMap:
        """
        現在設定されているシンボルマップを返します。
        """
        return self._symbol_map

    # @intent:responsibility step(notify=True) のアクセス通知先を設定します。Noneで解除します。
    def attach_observer(self, observer: Optional[AccessObserver]) -> None:
        self._observer = observer

    # @intent:responsibility 初期状態のCpuStateオブジェクトを生成します。
    # @intent:rationale 各CPUアーキテクチャで初期状態が異なるため、抽象メソッドとして定義します。
    @abstractmethod
    def _create_initial_state(self) -> CpuState:
        """
        CPUの初期状態を生成して返します。
        """
        pass

    # @intent:responsibility CPUをリセットし、初期状態に戻します。
    # @intent:rationale デコード結果は不変の原本イメージのみに依存するため、メモリサイズが変わらない限りキャッシュを再利用します。
    def reset(self) -> None:
        """
        PC・レジスタ・フラグを0に戻し、メモリを原本から複製し直します。
        """
        self._state = self._create_initial_state()
        self._memory.reset()
        self._step_count = 0
        if self._memory.size != self._cache_memory_size:
            self._cache_memory_size = self._memory.size
            self._decode_cache = self._new_decode_cache()

    # @intent:responsibility 新しい原本イメージを設定し、デコードキャッシュを破棄してリセットします。
    def load_origin(self, image: bytes) -> None:
        self._memory.load_origin(image)
        self._cache_memory_size = self._memory.size
        self._decode_cache = self._new_decode_cache()
        self.reset()

    # @intent:responsibility 現在のCPUの状態を返します。
    def get_state(self) -> CpuState:
        """
        現在のCPUの状態（レジスタ値など）を返します。
        """
        return self._state

    def read_pc(self) -> int:
        return self._state.pc

    # @intent:responsibility 表示層向けにメモリの生バイト列を返します（アクセス記録なし）。
    def read_memory(self, address: int, width: int) -> bytes:
        return self._memory.read_bytes(address, width)

    # @intent:responsibility デコードキャッシュを経由して、PCが指す命令を取得します。
    # @intent:pre-condition PCは命令幅に整列している必要があります。
    def _fetch(self, pc: int) -> DecodedInstruction:
        width = self._instruction_width
        if pc % width:
            raise MemoryAccessFault(f"Misaligned PC {pc:#x} (instruction width {width}).")
        index = pc // width
        if index >= len(self._decode_cache):
            raise MemoryAccessFault(f"PC {pc:#x} out of bounds for memory of size {self._memory.size}.")
        instruction = self._decode_cache[index]
        if instruction is None:
            word = self._memory.peek_origin(pc, width)
            instruction = self._decode(word, pc)
            if instruction is None:
                raise UndecodableInstructionFault(pc, word)
            self._decode_cache[index] = instruction
        return instruction

    # @intent:responsibility 命令語をデコードし、実行ハンドラを束縛したDecodedInstructionを返します。
    @abstractmethod
    def _decode(self, word: int, address: int) -> Optional[DecodedInstruction]:
        """
        一致するエンコーディングが無い場合はNoneを返します。
        """
        pass

    # @intent:responsibility デコードされた命令を実行し、分岐先アドレス（分岐しなければNone）を返します。
    @abstractmethod
    def _execute(self, instruction: DecodedInstruction) -> Optional[int]:
        pass

    # @intent:responsibility レジスタアクセスの記録を有効/無効にします。
    @abstractmethod
    def _set_register_tracking(self, enabled: bool) -> None:
        pass

    # @intent:responsibility このステップで記録されたレジスタアクセスを返し、記録をクリアします。
    @abstractmethod
    def _take_register_activity(self) -> List[Access]:
        pass

    # @intent:responsibility CPUを1命令サイクル進め、その結果のスナップショットを返します。
    # @intent:rationale Template Methodパターンを採用し、共通の実行フロー
    #                  （ログクリア→フェッチ→実行→PC更新→通知→Snapshot生成）を定義します。
    # @intent:post-condition フェッチやデコードで例外が発生した場合、PCとレジスタは変更されません。
    def step(self, notify: bool = False) -> Snapshot:
        """
        CPUを1命令進めます。`notify` がTrueの場合、発生した全アクセスを観測者へ通知します。
        """
        # 1. 前処理: 前サイクルまでの残存ログを破棄
        self._memory.get_and_clear_activity_log()
        self._take_register_activity()
        old_pc = self._state.pc

        # 2. フェッチ（キャッシュミス時はデコードしてキャッシュに格納）
        instruction = self._fetch(old_pc)

        # 3. 実行
        self._memory.tracking = notify
        self._set_register_tracking(notify)
        try:
            target = self._execute(instruction)
        finally:
            self._memory.tracking = False
            self._set_register_tracking(False)

        # 4. PC更新: 分岐先が無ければ次の命令へ
        if target is None:
            target = old_pc + instruction.length
        self._state.pc = target & self.pc_mask
        self._step_count += 1

        # 5. 通知
        accesses = self._take_register_activity() + self._memory.get_and_clear_activity_log()
        if notify and self._observer is not None:
            for access in accesses:
                self._observer.on_access(access.kind, access.location, access.old_value, access.new_value)

        return self._create_snapshot(old_pc, instruction, accesses)

    # @intent:responsibility スナップショットを生成します。
    def _create_snapshot(self, old_pc: int, instruction: DecodedInstruction, accesses: List[Access]) -> Snapshot:
        symbol_label = self._reverse_symbol_map.get(old_pc, "")
        symbol_info = f"{symbol_label}: " if symbol_label else ""
        symbol_info += self.format_instruction(instruction)
        return Snapshot(
            old_pc=old_pc,
            new_pc=self._state.pc,
            instruction=instruction,
            metadata=Metadata(step_count=self._step_count, symbol_info=symbol_info),
            accesses=accesses,
        )

    # @intent:responsibility デコード済み命令を表示用のアセンブリ文字列に変換します。
    @abstractmethod
    def format_instruction(self, instruction: DecodedInstruction) -> str:
        pass

    # @intent:responsibility 名前でレジスタ値を読み出します（アクセス記録なし）。
    @abstractmethod
    def read_register(self, name: str) -> int:
        pass

    # @intent:responsibility 名前でレジスタ値を書き込みます（初期状態の適用用）。未知の名前はValueErrorです。
    @abstractmethod
    def write_register(self, name: str, value: int) -> None:
        pass

    @abstractmethod
    def get_register_map(self) -> Dict[str, int]:
        """
        現在のレジスタ値を辞書形式で返す。
        表示層がCPUの内部構造を知らなくても値を表示できるようにするために使用される。
        """
        pass

    @abstractmethod
    def get_register_layout(self) -> List[RegisterLayoutInfo]:
        """
        レジスタをどのように配置・グループ化すべきかの定義を返す。
        """
        pass

    @abstractmethod
    def get_flag_state(self) -> Dict[str, bool]:
        """
        現在のフラグの各ビットの状態を辞書形式で返す。
        """
        pass

    @abstractmethod
    def disassemble(self, start_addr: int, length: int) -> List[Tuple[int, str, str]]:
        """
        指定されたメモリ範囲を逆アセンブルし、(address, hex_bytes, text) のタプルリストを返す。
        """
        pass
