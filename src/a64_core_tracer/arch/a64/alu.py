# a64_core_tracer/arch/a64/alu.py
"""
A64 ALU（算術論理演算）およびビット操作ユーティリティ。

NZCVフラグの計算、シフト・拡張、論理即値（ビットマスク）の符号化と復号を担当します。
エンコーダ、逆アセンブラ、命令実装のすべてから利用されます。
"""
from typing import Optional, Tuple

SHIFT_TYPES = ("lsl", "lsr", "asr", "ror")
EXTEND_TYPES = ("uxtb", "uxth", "uxtw", "uxtx", "sxtb", "sxth", "sxtw", "sxtx")

N_FLAG = 0b1000
Z_FLAG = 0b0100
C_FLAG = 0b0010
V_FLAG = 0b0001


def mask(bits: int) -> int:
    return (1 << bits) - 1


# @intent:utility_function `bits` ビットの2の補数表現を符号付き整数に変換します。
def sign_extend(value: int, bits: int) -> int:
    value &= mask(bits)
    if value >> (bits - 1):
        value -= 1 << bits
    return value


def rotate_right(value: int, amount: int, width: int) -> int:
    amount %= width
    value &= mask(width)
    return ((value >> amount) | (value << (width - amount))) & mask(width)


def replicate(element: int, esize: int, width: int) -> int:
    result = 0
    for position in range(0, width, esize):
        result |= element << position
    return result


def highest_set_bit(value: int) -> int:
    return value.bit_length() - 1


# @intent:responsibility ARMのDecodeBitMasksを実装し、(wmask, tmask) を返します。
# @intent:post-condition 予約済みの組み合わせの場合はNoneを返します。
def decode_bit_masks(n: int, imms: int, immr: int, datasize: int,
                     immediate: bool = True) -> Optional[Tuple[int, int]]:
    length = highest_set_bit((n << 6) | (~imms & 0x3F))
    if length < 1:
        return None
    levels = mask(length)
    if immediate and (imms & levels) == levels:
        return None
    esize = 1 << length
    if esize > datasize:
        return None
    s = imms & levels
    r = immr & levels
    d = (s - r) & levels
    welem = mask(s + 1)
    telem = mask(d + 1)
    wmask = replicate(rotate_right(welem, r, esize), esize, datasize)
    tmask = replicate(telem, esize, datasize)
    return wmask, tmask


# @intent:responsibility 論理即値を (N, immr, imms) に符号化します。表現できない値はNoneです。
# @intent:rationale 最小の繰り返し要素を求め、その要素が「連続する1の回転」であるかを判定します。
def encode_bit_mask(value: int, datasize: int) -> Optional[Tuple[int, int, int]]:
    value &= mask(datasize)
    if value == 0 or value == mask(datasize):
        return None

    size = datasize
    while size > 2:
        half = size // 2
        if (value & mask(half)) != ((value >> half) & mask(half)):
            break
        size = half

    element = value & mask(size)
    for rotation in range(size):
        candidate = rotate_right(element, size - rotation, size)
        if candidate & (candidate + 1) == 0:
            ones = candidate.bit_length()
            imms = ((~(size * 2 - 1)) & 0x3F) | (ones - 1)
            return (1 if size == 64 else 0), rotation, imms
    return None


# @intent:responsibility ARMのAddWithCarryを実装し、結果とNZCVを返します。
def add_with_carry(x: int, y: int, carry: int, datasize: int) -> Tuple[int, int]:
    full = mask(datasize)
    unsigned_sum = (x & full) + (y & full) + carry
    signed_sum = sign_extend(x, datasize) + sign_extend(y, datasize) + carry
    result = unsigned_sum & full
    nzcv = 0
    if result >> (datasize - 1):
        nzcv |= N_FLAG
    if result == 0:
        nzcv |= Z_FLAG
    if unsigned_sum != result:
        nzcv |= C_FLAG
    if sign_extend(result, datasize) != signed_sum:
        nzcv |= V_FLAG
    return result, nzcv


# @intent:responsibility 論理演算結果からNZフラグを求めます（C, Vは0）。
def logic_flags(result: int, datasize: int) -> int:
    nzcv = 0
    if result >> (datasize - 1):
        nzcv |= N_FLAG
    if result == 0:
        nzcv |= Z_FLAG
    return nzcv


# @intent:responsibility 4ビットの条件コードがNZCVの下で成立するかを判定します。
def condition_holds(cond: int, nzcv: int) -> bool:
    n = bool(nzcv & N_FLAG)
    z = bool(nzcv & Z_FLAG)
    c = bool(nzcv & C_FLAG)
    v = bool(nzcv & V_FLAG)
    base = cond >> 1
    if base == 0:
        result = z
    elif base == 1:
        result = c
    elif base == 2:
        result = n
    elif base == 3:
        result = v
    elif base == 4:
        result = c and not z
    elif base == 5:
        result = n == v
    elif base == 6:
        result = n == v and not z
    else:
        result = True
    if cond & 1 and cond != 0b1111:
        result = not result
    return result


def shift_value(value: int, shift_type: int, amount: int, datasize: int) -> int:
    value &= mask(datasize)
    if shift_type == 0:
        return (value << amount) & mask(datasize)
    if shift_type == 1:
        return value >> amount
    if shift_type == 2:
        return (sign_extend(value, datasize) >> amount) & mask(datasize)
    return rotate_right(value, amount, datasize)


# @intent:responsibility 拡張レジスタ形式のオペランドを拡張・シフトします。optionは EXTEND_TYPES の添字です。
def extend_value(value: int, option: int, shift: int, datasize: int) -> int:
    size_bits = 8 << (option & 3)
    extended = value & mask(size_bits)
    if option >= 4:
        extended = sign_extend(extended, size_bits)
    return (extended << shift) & mask(datasize)


def count_leading_zeros(value: int, width: int) -> int:
    return width - (value & mask(width)).bit_length()


def count_leading_sign_bits(value: int, width: int) -> int:
    return count_leading_zeros(((value >> 1) ^ value) & mask(width - 1), width - 1)


def reverse_bits(value: int, width: int) -> int:
    result = 0
    for _ in range(width):
        result = (result << 1) | (value & 1)
        value >>= 1
    return result


# @intent:responsibility `container` ビットごとの区画内でバイト順を反転します（rev16/rev32/rev）。
def reverse_bytes(value: int, width: int, container: int) -> int:
    result = 0
    for base in range(0, width, container):
        chunk = (value >> base) & mask(container)
        reversed_chunk = int.from_bytes(chunk.to_bytes(container // 8, "little"), "big")
        result |= reversed_chunk << base
    return result
