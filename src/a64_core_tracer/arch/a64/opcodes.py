# a64_core_tracer/arch/a64/opcodes.py
"""
A64 オペコード定義

オペランド種別、実行操作ごとの一般形（ベースフォーム）、およびニーモニックごとのエンコーディング形式を定義します。
エイリアスは必ず一般形より前に宣言します（例: cmp は subs より前、mov は orr/movz より前）。

パターン中のフィールド文字:
    d 転送先  n 第1ソース  m 第2ソース  a 第3ソース  t 転送レジスタ  u 第2転送レジスタ
    z サイズフラグ(sf, 複数位置なら全ビット複製)  I 即値/オフセット  その他は各ベースフォームを参照
"""
from enum import Enum
from types import MappingProxyType

from a64_core_tracer.arch.a64.table import EntrySpec, OpcodeTable

# @intent:constant オペランド形状コードの各文字を定義します。
class OperandKind(Enum):
    REGISTER = "r"           # X/Wどちらでも可（最初のrが命令幅を決める）
    X_REGISTER = "x"
    W_REGISTER = "w"
    EXTENDED = "e"           # レジスタ + [su]xt[bhwx] #n
    LOGICAL_SHIFTED = "s"    # レジスタ + lsl/lsr/asr/ror #n
    ARITH_SHIFTED = "S"      # レジスタ + lsl/lsr/asr #n
    IMMEDIATE = "i"          # 符号なし即値
    SHIFT_AMOUNT = "h"       # データ幅未満のシフト量
    ARITH_IMMEDIATE = "t"    # 12ビット即値（必要なら lsl #12）
    BITMASK = "m"            # 論理即値（N:immr:imms）
    WIDE = "J"               # 16ビット即値 << (16*hw)
    INVERTED_WIDE = "K"      # ~(16ビット即値 << (16*hw))
    PC_RELATIVE = "P"        # 語単位のPC相対オフセット
    ADR_OFFSET = "Q"         # バイト単位のPC相対オフセット
    PAGE_OFFSET = "Y"        # 4KBページ単位のPC相対オフセット
    LSL_IMMEDIATE = "-"      # lsl #n を ubfm で表現
    INSERT_LSB = "F"         # bfi/sbfiz/ubfiz のlsb
    INSERT_WIDTH = "G"
    EXTRACT_LSB = "l"        # bfxil/sbfx/ubfx のlsb
    EXTRACT_WIDTH = "H"
    BIT_NUMBER = "b"         # tbz/tbnz のビット番号
    ADDRESS_SCALED = "a"     # [xn{, #uimm}]（ペアでは符号付きimm7）
    ADDRESS_UNSCALED = "o"   # [xn{, #simm9}]
    ADDRESS_PRE = "!"        # [xn, #simm]!
    ADDRESS_POST = "+"       # [xn], #simm
    ADDRESS_REGISTER = "R"   # [xn, xm{, extend #n}]

# @intent:constant 各オペランド種別が書き込む固定フィールド文字。Noneは役割文字列で指定することを表します。
KIND_LETTERS = MappingProxyType({
    "r": None, "x": None, "w": None, "i": None, "h": None,
    "e": "moi", "s": "msi", "S": "msi", "t": "si", "m": "Nrs",
    "J": "hj", "K": "hj", "P": "I", "Q": "Ii", "Y": "Ii",
    "-": "rs", "F": "r", "G": "s", "l": "r", "H": "s", "b": "b",
    "a": "nI", "o": "nI", "!": "nI", "+": "nI", "R": "nmoS",
})

REGISTER_KINDS = "rxw"
ADDRESS_KINDS = "ao!+R"

# @intent:constant レジスタ番号フィールドの文字と、デコード結果で使う役割名。
REGISTER_ROLES = MappingProxyType({
    "d": "destination", "n": "source1", "m": "source2", "a": "source3",
    "t": "transfer", "u": "transfer2",
})
FIELD_WIDTHS = MappingProxyType({letter: 5 for letter in REGISTER_ROLES})

I7, I9, I12, I14, I19, I26 = ("I" * n for n in (7, 9, 12, 14, 19, 26))
J16 = "j" * 16

# @intent:constant 実行操作名から、ハンドラがフィールドを読み出す一般形パターンへの対応。
BASE_FORMS = MappingProxyType({
    "addsub_ext":     "z p f 01011 00 1 mmmmm ooo iii nnnnn ddddd",
    "addsub_sreg":    "z p f 01011 ss 0 mmmmm iiiiii nnnnn ddddd",
    "addsub_imm":     "z p f 100010 s iiiiiiiiiiii nnnnn ddddd",
    "addsub_carry":   "z p f 11010000 mmmmm 000000 nnnnn ddddd",
    "logic_sreg":     "z cc 01010 ss N mmmmm iiiiii nnnnn ddddd",
    "logic_imm":      "z cc 100100 N rrrrrr ssssss nnnnn ddddd",
    "movewide":       f"z cc 100101 hh {J16} ddddd",
    "bitfield":       "z cc 100110 N rrrrrr ssssss nnnnn ddddd",
    "extract":        "z 00 100111 N 0 mmmmm ssssss nnnnn ddddd",
    "dp2":            "z 0 0 11010110 mmmmm cccccc nnnnn ddddd",
    "dp1":            "z 1 0 11010110 00000 cccccc nnnnn ddddd",
    "dp3":            "z 00 11011 ccc mmmmm p aaaaa nnnnn ddddd",
    "pcrel":          f"p ii 10000 {I19} ddddd",
    "branch_imm":     f"p 00101 {I26}",
    "branch_cond":    f"0101010 0 {I19} 0 cccc",
    "compare_branch": f"z 011010 p {I19} ttttt",
    "test_branch":    f"b 011011 p bbbbb {I14} ttttt",
    "branch_reg":     "1101011 00 cc 11111 000000 nnnnn 00000",
    "ldst_uimm":      f"xx 111 0 01 cc {I12} nnnnn ttttt",
    "ldst_imm9":      f"xx 111 0 00 cc 0 {I9} ww nnnnn ttttt",
    "ldst_reg":       "xx 111 0 00 cc 1 mmmmm ooo S 10 nnnnn ttttt",
    "ldr_literal":    f"cc 011 0 00 {I19} ttttt",
    "ldstp":          f"cc 101 0 0ww L {I7} uuuuu nnnnn ttttt",
    "hint":           "1101010100 0 00 011 0010 0000 000 11111",
    "exception":      "11010100 010 iiiiiiiiiiiiiiii 000 00",
})


def _addsub(p: str, f: str):
    return [
        EntrySpec("rre", "d n *", f"z {p} {f} 01011 00 1 mmmmm ooo iii nnnnn ddddd", "addsub_ext"),
        EntrySpec("rrS", "d n *", f"z {p} {f} 01011 ss 0 mmmmm iiiiii nnnnn ddddd", "addsub_sreg"),
        EntrySpec("rrt", "d n *", f"z {p} {f} 100010 s iiiiiiiiiiii nnnnn ddddd", "addsub_imm"),
    ]


def _compare(p: str):
    return [
        EntrySpec("re", "n *", f"z {p} 1 01011 00 1 mmmmm ooo iii nnnnn 11111", "addsub_ext"),
        EntrySpec("rS", "n *", f"z {p} 1 01011 ss 0 mmmmm iiiiii nnnnn 11111", "addsub_sreg"),
        EntrySpec("rt", "n *", f"z {p} 1 100010 s iiiiiiiiiiii nnnnn 11111", "addsub_imm"),
    ]


def _carry(p: str, f: str):
    return [EntrySpec("rrr", "d n m", f"z {p} {f} 11010000 mmmmm 000000 nnnnn ddddd", "addsub_carry")]


def _dp3(code: str, p: str, shape: str = "rrrr", size: str = "z"):
    if len(shape) == 3:
        return [EntrySpec(shape, "d n m", f"{size} 00 11011 {code} mmmmm {p} 11111 nnnnn ddddd", "dp3")]
    return [EntrySpec(shape, "d n m a", f"{size} 00 11011 {code} mmmmm {p} aaaaa nnnnn ddddd", "dp3")]


def _dp2(code: str):
    return EntrySpec("rrr", "d n m", f"z 0 0 11010110 mmmmm {code} nnnnn ddddd", "dp2")


def _dp1(code: str, shape: str = "rr", size: str = "z"):
    return [EntrySpec(shape, "d n", f"{size} 1 0 11010110 00000 {code} nnnnn ddddd", "dp1")]


def _bitfield_pattern(cc: str) -> str:
    return f"z {cc} 100110 z rrrrrr ssssss nnnnn ddddd"


def _logic(cc: str, n: str, immediate: bool):
    entries = [EntrySpec("rrs", "d n *", f"z {cc} 01010 ss {n} mmmmm iiiiii nnnnn ddddd", "logic_sreg")]
    if immediate:
        entries.append(EntrySpec("rrm", "d n *", f"z {cc} 100100 N rrrrrr ssssss nnnnn ddddd", "logic_imm"))
    return entries


def _movewide(cc: str):
    return [EntrySpec("rJ", "d *", f"z {cc} 100101 hh {J16} ddddd", "movewide")]


CONDITIONS = ("eq", "ne", "cs", "cc", "mi", "pl", "vs", "vc",
              "hi", "ls", "ge", "lt", "gt", "le", "al", "nv")
CONDITION_ALIASES = {"hs": "cs", "lo": "cc"}


def _branch_cond(code: int):
    return [EntrySpec("P", "*", f"0101010 0 {I19} 0 {code:04b}", "branch_cond")]


def _load_store(size: str, opc: str, reg: str, nbytes=None, literal: bool = False):
    entries = [
        EntrySpec(f"{reg}a", "t *", f"{size} 111 0 01 {opc} {I12} nnnnn ttttt", "ldst_uimm", nbytes),
        EntrySpec(f"{reg}!", "t *", f"{size} 111 0 00 {opc} 0 {I9} 11 nnnnn ttttt", "ldst_imm9", nbytes),
        EntrySpec(f"{reg}+", "t *", f"{size} 111 0 00 {opc} 0 {I9} 01 nnnnn ttttt", "ldst_imm9", nbytes),
        EntrySpec(f"{reg}R", "t *", f"{size} 111 0 00 {opc} 1 mmmmm ooo S 10 nnnnn ttttt", "ldst_reg", nbytes),
    ]
    if literal:
        lit_opc = {"1z": "0z", "10": "10"}[size]
        entries.append(EntrySpec(f"{reg}P", "t *", f"{lit_opc} 011 0 00 {I19} ttttt", "ldr_literal", nbytes))
    return entries


def _unscaled(size: str, opc: str, reg: str, nbytes=None):
    return [EntrySpec(f"{reg}o", "t *", f"{size} 111 0 00 {opc} 0 {I9} 00 nnnnn ttttt", "ldst_imm9", nbytes)]


def _pair(load: str):
    return [
        EntrySpec("rra", "t u *", f"z0 101 0 010 {load} {I7} uuuuu nnnnn ttttt", "ldstp", pair=True),
        EntrySpec("rr!", "t u *", f"z0 101 0 011 {load} {I7} uuuuu nnnnn ttttt", "ldstp", pair=True),
        EntrySpec("rr+", "t u *", f"z0 101 0 001 {load} {I7} uuuuu nnnnn ttttt", "ldstp", pair=True),
    ]


# @intent:constant ニーモニックごとのエンコーディング形式。並び順がデコード時の優先順位です。
DEFINITIONS = (
    # 加減算
    ("add", _addsub("0", "0")),
    ("cmn", _compare("0")),
    ("adds", _addsub("0", "1")),
    ("neg", [EntrySpec("rS", "d *", "z 1 0 01011 ss 0 mmmmm iiiiii 11111 ddddd", "addsub_sreg")]),
    ("sub", _addsub("1", "0")),
    ("cmp", _compare("1")),
    ("negs", [EntrySpec("rS", "d *", "z 1 1 01011 ss 0 mmmmm iiiiii 11111 ddddd", "addsub_sreg")]),
    ("subs", _addsub("1", "1")),
    ("adc", _carry("0", "0")),
    ("adcs", _carry("0", "1")),
    ("ngc", [EntrySpec("rr", "d m", "z 1 0 11010000 mmmmm 000000 11111 ddddd", "addsub_carry")]),
    ("sbc", _carry("1", "0")),
    ("ngcs", [EntrySpec("rr", "d m", "z 1 1 11010000 mmmmm 000000 11111 ddddd", "addsub_carry")]),
    ("sbcs", _carry("1", "1")),
    ("adr", [EntrySpec("xQ", "d *", f"0 ii 10000 {I19} ddddd", "pcrel")]),
    ("adrp", [EntrySpec("xY", "d *", f"1 ii 10000 {I19} ddddd", "pcrel")]),

    # 乗除算
    ("mul", _dp3("000", "0", "rrr")),
    ("mneg", _dp3("000", "1", "rrr")),
    ("madd", _dp3("000", "0")),
    ("msub", _dp3("000", "1")),
    ("smull", _dp3("001", "0", "xww", "1")),
    ("umull", _dp3("101", "0", "xww", "1")),
    ("smnegl", _dp3("001", "1", "xww", "1")),
    ("umnegl", _dp3("101", "1", "xww", "1")),
    ("smaddl", _dp3("001", "0", "xwwx", "1")),
    ("umaddl", _dp3("101", "0", "xwwx", "1")),
    ("smsubl", _dp3("001", "1", "xwwx", "1")),
    ("umsubl", _dp3("101", "1", "xwwx", "1")),
    ("smulh", _dp3("010", "0", "xxx", "1")),
    ("umulh", _dp3("110", "0", "xxx", "1")),
    ("sdiv", [_dp2("000011")]),
    ("udiv", [_dp2("000010")]),

    # シフト（レジスタ指定と即値エイリアス）
    ("asr", [_dp2("001010"),
             EntrySpec("rrh", "d n r", "z 00 100110 z rrrrrr z11111 nnnnn ddddd", "bitfield")]),
    ("lsl", [_dp2("001000"),
             EntrySpec("rr-", "d n *", _bitfield_pattern("10"), "bitfield")]),
    ("lsr", [_dp2("001001"),
             EntrySpec("rrh", "d n r", "z 10 100110 z rrrrrr z11111 nnnnn ddddd", "bitfield")]),
    ("ror", [_dp2("001011"),
             EntrySpec("rrh", "d nm s", "z 00 100111 z 0 mmmmm ssssss nnnnn ddddd", "extract")]),

    # ビットフィールド
    ("sxtb", [EntrySpec("rw", "d n", "z 00 100110 z 000000 000111 nnnnn ddddd", "bitfield")]),
    ("sxth", [EntrySpec("rw", "d n", "z 00 100110 z 000000 001111 nnnnn ddddd", "bitfield")]),
    ("sxtw", [EntrySpec("xw", "d n", "1 00 100110 1 000000 011111 nnnnn ddddd", "bitfield")]),
    ("sbfiz", [EntrySpec("rrFG", "d n * *", _bitfield_pattern("00"), "bitfield")]),
    ("sbfx", [EntrySpec("rrlH", "d n * *", _bitfield_pattern("00"), "bitfield")]),
    ("sbfm", [EntrySpec("rrii", "d n r s", _bitfield_pattern("00"), "bitfield")]),
    ("uxtb", [EntrySpec("ww", "d n", "0 10 100110 0 000000 000111 nnnnn ddddd", "bitfield")]),
    ("uxth", [EntrySpec("ww", "d n", "0 10 100110 0 000000 001111 nnnnn ddddd", "bitfield")]),
    ("ubfiz", [EntrySpec("rrFG", "d n * *", _bitfield_pattern("10"), "bitfield")]),
    ("ubfx", [EntrySpec("rrlH", "d n * *", _bitfield_pattern("10"), "bitfield")]),
    ("ubfm", [EntrySpec("rrii", "d n r s", _bitfield_pattern("10"), "bitfield")]),
    ("bfc", [EntrySpec("rFG", "d * *", "z 01 100110 z rrrrrr ssssss 11111 ddddd", "bitfield")]),
    ("bfi", [EntrySpec("rrFG", "d n * *", _bitfield_pattern("01"), "bitfield")]),
    ("bfxil", [EntrySpec("rrlH", "d n * *", _bitfield_pattern("01"), "bitfield")]),
    ("bfm", [EntrySpec("rrii", "d n r s", _bitfield_pattern("01"), "bitfield")]),
    ("extr", [EntrySpec("rrrh", "d n m s", "z 00 100111 z 0 mmmmm ssssss nnnnn ddddd", "extract")]),

    # 論理演算と転送
    ("mov", [
        EntrySpec("rr", "d m", "z 01 01010 00 0 mmmmm 000000 11111 ddddd", "logic_sreg"),
        EntrySpec("rJ", "d *", f"z 10 100101 hh {J16} ddddd", "movewide"),
        EntrySpec("rK", "d *", f"z 00 100101 hh {J16} ddddd", "movewide"),
        EntrySpec("rm", "d *", "z 01 100100 N rrrrrr ssssss 11111 ddddd", "logic_imm"),
    ]),
    ("and", _logic("00", "0", True)),
    ("tst", [
        EntrySpec("rs", "n *", "z 11 01010 ss 0 mmmmm iiiiii nnnnn 11111", "logic_sreg"),
        EntrySpec("rm", "n *", "z 11 100100 N rrrrrr ssssss nnnnn 11111", "logic_imm"),
    ]),
    ("ands", _logic("11", "0", True)),
    ("orr", _logic("01", "0", True)),
    ("eor", _logic("10", "0", True)),
    ("mvn", [EntrySpec("rs", "d *", "z 01 01010 ss 1 mmmmm iiiiii 11111 ddddd", "logic_sreg")]),
    ("orn", _logic("01", "1", False)),
    ("bic", _logic("00", "1", False)),
    ("bics", _logic("11", "1", False)),
    ("eon", _logic("10", "1", False)),
    ("movn", _movewide("00")),
    ("movz", _movewide("10")),
    ("movk", _movewide("11")),

    # 1ソースのデータ処理
    ("cls", _dp1("000101")),
    ("clz", _dp1("000100")),
    ("rbit", _dp1("000000")),
    ("rev16", _dp1("000001")),
    ("rev32", _dp1("000010", "xx", "1")),
    ("rev", _dp1("00001z")),

    # 分岐
    *((f"b.{name}", _branch_cond(code)) for code, name in enumerate(CONDITIONS)),
    *((f"b.{alias}", _branch_cond(CONDITIONS.index(name))) for alias, name in CONDITION_ALIASES.items()),
    *((f"b{name}", _branch_cond(code)) for code, name in enumerate(CONDITIONS)),
    *((f"b{alias}", _branch_cond(CONDITIONS.index(name))) for alias, name in CONDITION_ALIASES.items()),
    ("b", [EntrySpec("P", "*", f"0 00101 {I26}", "branch_imm")]),
    ("bl", [EntrySpec("P", "*", f"1 00101 {I26}", "branch_imm")]),
    ("br", [EntrySpec("x", "n", "1101011 00 00 11111 000000 nnnnn 00000", "branch_reg")]),
    ("blr", [EntrySpec("x", "n", "1101011 00 01 11111 000000 nnnnn 00000", "branch_reg")]),
    ("ret", [
        EntrySpec("", "", "1101011 00 10 11111 000000 11110 00000", "branch_reg"),
        EntrySpec("x", "n", "1101011 00 10 11111 000000 nnnnn 00000", "branch_reg"),
    ]),
    ("cbz", [EntrySpec("rP", "t *", f"z 011010 0 {I19} ttttt", "compare_branch")]),
    ("cbnz", [EntrySpec("rP", "t *", f"z 011010 1 {I19} ttttt", "compare_branch")]),
    ("tbz", [EntrySpec("rbP", "t * *", f"b 011011 0 bbbbb {I14} ttttt", "test_branch")]),
    ("tbnz", [EntrySpec("rbP", "t * *", f"b 011011 1 bbbbb {I14} ttttt", "test_branch")]),

    # ロード/ストア
    ("ldr", _load_store("1z", "01", "r", literal=True)),
    ("ldur", _unscaled("1z", "01", "r")),
    ("str", _load_store("1z", "00", "r")),
    ("stur", _unscaled("1z", "00", "r")),
    ("ldrb", _load_store("00", "01", "w", 1)),
    ("strb", _load_store("00", "00", "w", 1)),
    ("ldrh", _load_store("01", "01", "w", 2)),
    ("strh", _load_store("01", "00", "w", 2)),
    ("ldurb", _unscaled("00", "01", "w", 1)),
    ("sturb", _unscaled("00", "00", "w", 1)),
    ("ldurh", _unscaled("01", "01", "w", 2)),
    ("sturh", _unscaled("01", "00", "w", 2)),
    ("ldrsw", _load_store("10", "10", "x", 4, literal=True)),
    ("ldursw", _unscaled("10", "10", "x", 4)),
    ("ldrsb", [EntrySpec("wa", "t *", size=1)]),
    ("ldrsh", [EntrySpec("wa", "t *", size=2)]),
    ("ldursb", [EntrySpec("wa", "t *", size=1)]),
    ("ldursh", [EntrySpec("wa", "t *", size=2)]),
    ("ldp", _pair("1")),
    ("stp", _pair("0")),
    ("ldpsw", [EntrySpec("xxa", "t u *")]),

    # その他
    ("nop", [EntrySpec("", "", "1101010100 0 00 011 0010 0000 000 11111", "hint")]),
    ("hlt", [EntrySpec("i", "i", "11010100 010 iiiiiiiiiiiiiiii 000 00", "exception")]),
)

# @intent:constant モジュール読み込み時に一度だけ構築され、全CPUインスタンスで共有される不変テーブル。
A64_OPCODE_TABLE = OpcodeTable(DEFINITIONS, BASE_FORMS, KIND_LETTERS, FIELD_WIDTHS)
