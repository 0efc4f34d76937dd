# a64_core_tracer/arch/a64/state.py
"""
A64 CPU固有の状態定義。

31本の汎用レジスタ(x0-x30)と、書き込みを破棄する1つの追加スロット（ゼロレジスタ）からなる
レジスタファイル、およびNZCVフラグを保持します。
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Tuple

from a64_core_tracer.common.types import Access, AccessKind
from a64_core_tracer.core.state import CpuState
from a64_core_tracer.arch.a64.alu import N_FLAG, Z_FLAG, C_FLAG, V_FLAG

GENERAL_REGISTER_COUNT = 31
ZERO_REGISTER = 31
MASK64 = (1 << 64) - 1


def _build_register_names():
    names = {}
    for number in range(GENERAL_REGISTER_COUNT):
        names[f"x{number}"] = (number, True)
        names[f"w{number}"] = (number, False)
    names["xzr"] = (ZERO_REGISTER, True)
    names["wzr"] = (ZERO_REGISTER, False)
    names["sp"] = (28, True)
    names["fp"] = (29, True)
    names["lr"] = (30, True)
    return MappingProxyType(names)

# @intent:constant レジスタ名から (スロット番号, 64ビット幅か) への対応。ゼロレジスタ名は破棄スロットに解決されます。
REGISTER_NAMES = _build_register_names()


def register_name(number: int, wide: bool = True) -> str:
    if number == ZERO_REGISTER:
        return "xzr" if wide else "wzr"
    return f"{'x' if wide else 'w'}{number}"


# @intent:responsibility 32スロットのレジスタ配列を管理します。スロット31は常に0として読み出されます。
# @intent:rationale 書き込み後に破棄スロットを無条件に0へ戻すことで、アクセスごとの条件分岐を避けます。
class RegisterFile:
    def __init__(self):
        self._slots: List[int] = [0] * (GENERAL_REGISTER_COUNT + 1)
        self._activity_log: List[Access] = []
        self.tracking: bool = False

    def read(self, number: int) -> int:
        value = self._slots[number]
        if self.tracking and number != ZERO_REGISTER:
            self._activity_log.append(Access(AccessKind.READ, register_name(number), value, value))
        return value

    def write(self, number: int, value: int) -> None:
        value &= MASK64
        old = self._slots[number]
        self._slots[number] = value
        self._slots[ZERO_REGISTER] = 0
        if self.tracking and number != ZERO_REGISTER:
            self._activity_log.append(Access(AccessKind.WRITE, register_name(number), old, value))

    # @intent:responsibility アクセスを記録せずに値を返します（表示・ブレークポイント判定用）。
    def peek(self, number: int) -> int:
        return self._slots[number]

    def reset(self) -> None:
        for number in range(len(self._slots)):
            self._slots[number] = 0
        self._activity_log = []

    def values(self) -> Tuple[int, ...]:
        return tuple(self._slots[:GENERAL_REGISTER_COUNT])

    def get_and_clear_activity_log(self) -> List[Access]:
        log = self._activity_log
        self._activity_log = []
        return log


# @intent:responsibility A64 CPUの全状態（PC、レジスタファイル、NZCV）を保持します。
@dataclass
class A64CpuState(CpuState):
    """
    A64 CPUの状態を保持するデータクラス。
    """
    registers: RegisterFile = field(default_factory=RegisterFile)
    nzcv: int = 0b0000

    # @intent:accessor NZCVの各フラグビットにアクセスするためのプロパティを提供します。

    @property
    def flag_n(self) -> bool:
        return (self.nzcv & N_FLAG) != 0

    @flag_n.setter
    def flag_n(self, value: bool) -> None:
        if value: self.nzcv |= N_FLAG
        else: self.nzcv &= ~N_FLAG

    @property
    def flag_z(self) -> bool:
        return (self.nzcv & Z_FLAG) != 0

    @flag_z.setter
    def flag_z(self, value: bool) -> None:
        if value: self.nzcv |= Z_FLAG
        else: self.nzcv &= ~Z_FLAG

    @property
    def flag_c(self) -> bool:
        return (self.nzcv & C_FLAG) != 0

    @flag_c.setter
    def flag_c(self, value: bool) -> None:
        if value: self.nzcv |= C_FLAG
        else: self.nzcv &= ~C_FLAG

    @property
    def flag_v(self) -> bool:
        return (self.nzcv & V_FLAG) != 0

    @flag_v.setter
    def flag_v(self, value: bool) -> None:
        if value: self.nzcv |= V_FLAG
        else: self.nzcv &= ~V_FLAG
