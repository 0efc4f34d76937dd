# a64_core_tracer/arch/a64/table.py
"""
オペコードテーブル

ニーモニックごとの順序付きエントリ列と、全ニーモニックを宣言順に平坦化したデコード順序を保持します。
エイリアス（汎用命令の特殊形）は同じビット配置に重なるため、宣言順そのものが優先順位になります。
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, NamedTuple, Tuple

from a64_core_tracer.core.errors import EncodingTableError
from a64_core_tracer.arch.a64.pattern import BitPattern

# @intent:data_structure テーブル定義の1行。パターンを持たないエントリは「宣言のみ・未実装」を表します。
class EntrySpec(NamedTuple):
    shape: str
    roles: str
    pattern: Optional[str] = None
    op: Optional[str] = None
    size: Optional[int] = None
    pair: bool = False

# @intent:responsibility 構築済みの1エンコーディング形式を表します。
@dataclass(frozen=True)
class OpcodeEntry:
    """
    ニーモニック、オペランド形状、オペランドごとのフィールド割り当て、ビットパターン、実行操作名。
    """
    mnemonic: str
    shape: str
    roles: Tuple[str, ...]
    pattern: Optional[BitPattern]
    op: Optional[str]
    size: Optional[int] = None
    pair: bool = False
    index: int = 0

    @property
    def implemented(self) -> bool:
        return self.pattern is not None

    def __repr__(self) -> str:
        return f"OpcodeEntry({self.mnemonic!r}, {self.shape!r}, op={self.op!r})"


DecodeFilter = Callable[[OpcodeEntry, Dict[str, int]], bool]

# @intent:responsibility 宣言順を保ったままエントリを構築・検証し、アセンブル方向とデコード方向の検索を提供します。
# @intent:rationale 優先順位は明示的なタプルで保持し、ハッシュ構造の反復順には依存しません。
class OpcodeTable:
    """
    `definitions` は (ニーモニック, EntrySpecの列) の順序付き列です。
    `base_forms` は実行操作名から、ハンドラがフィールドを読む一般形パターンへの対応です。
    `kind_letters` はオペランド種別ごとの固定フィールド文字（Noneなら役割文字列で指定）です。
    """
    def __init__(self,
                 definitions: Sequence[Tuple[str, Sequence[EntrySpec]]],
                 base_forms: Mapping[str, str],
                 kind_letters: Mapping[str, Optional[str]],
                 field_widths: Optional[Mapping[str, int]] = None):
        self._field_widths = field_widths
        self._kind_letters = kind_letters
        self._base_forms = MappingProxyType(
            {op: BitPattern(template, field_widths) for op, template in base_forms.items()})

        by_mnemonic: Dict[str, Tuple[OpcodeEntry, ...]] = {}
        order: List[OpcodeEntry] = []
        index = 0
        for mnemonic, specs in definitions:
            if mnemonic in by_mnemonic:
                raise EncodingTableError(f"Mnemonic '{mnemonic}' declared twice")
            entries = []
            for spec in specs:
                entry = self._build_entry(mnemonic, spec, index)
                entries.append(entry)
                if entry.implemented:
                    order.append(entry)
                index += 1
            by_mnemonic[mnemonic] = tuple(entries)

        self._by_mnemonic = MappingProxyType(by_mnemonic)
        self._decode_order: Tuple[OpcodeEntry, ...] = tuple(order)

    # @intent:responsibility 1つのEntrySpecを検証し、OpcodeEntryへ変換します。
    def _build_entry(self, mnemonic: str, spec: EntrySpec, index: int) -> OpcodeEntry:
        roles = tuple(spec.roles.split())
        if len(roles) != len(spec.shape):
            raise EncodingTableError(
                f"{mnemonic}: shape '{spec.shape}' has {len(spec.shape)} operands but {len(roles)} roles")
        for kind in spec.shape:
            if kind not in self._kind_letters:
                raise EncodingTableError(f"{mnemonic}: unknown operand kind '{kind}'")

        if spec.pattern is None:
            return OpcodeEntry(mnemonic, spec.shape, roles, None, None, spec.size, spec.pair, index)

        pattern = BitPattern(spec.pattern, self._field_widths)
        if spec.op not in self._base_forms:
            raise EncodingTableError(f"{mnemonic}: unknown operation '{spec.op}'")
        base = self._base_forms[spec.op]
        if (base.literal_mask & ~pattern.literal_mask) or \
                (pattern.literal_value & base.literal_mask) != base.literal_value:
            raise EncodingTableError(
                f"{mnemonic}: pattern '{pattern.template}' conflicts with base form '{base.template}'")

        for kind, role in zip(spec.shape, roles):
            fixed = self._kind_letters[kind]
            letters = role if fixed is None else fixed
            if fixed is not None and role != "*":
                raise EncodingTableError(f"{mnemonic}: operand kind '{kind}' takes '*' as its role")
            for letter in letters:
                if not pattern.has_field(letter):
                    raise EncodingTableError(
                        f"{mnemonic}: field '{letter}' missing from pattern '{pattern.template}'")

        return OpcodeEntry(mnemonic, spec.shape, roles, pattern, spec.op, spec.size, spec.pair, index)

    def __contains__(self, mnemonic: str) -> bool:
        return mnemonic in self._by_mnemonic

    # @intent:responsibility ニーモニックのエントリを宣言順に返します。未知のニーモニックは空タプルです。
    def entries(self, mnemonic: str) -> Tuple[OpcodeEntry, ...]:
        return self._by_mnemonic.get(mnemonic, ())

    def mnemonics(self) -> Tuple[str, ...]:
        return tuple(self._by_mnemonic)

    @property
    def decode_order(self) -> Tuple[OpcodeEntry, ...]:
        return self._decode_order

    # @intent:responsibility 実行操作名に対応する一般形パターンを返します。
    def base_form(self, op: str) -> BitPattern:
        return self._base_forms[op]

    # @intent:responsibility 命令語に一致する最初のエントリと、そのエントリで抽出したフィールド値を返します。
    # @intent:rationale `accept` はエイリアス条件などリテラルビットだけでは表せない制約を判定します。
    def resolve(self, word: int, accept: Optional[DecodeFilter] = None) -> Optional[Tuple[OpcodeEntry, Dict[str, int]]]:
        for entry in self._decode_order:
            if not entry.pattern.matches(word):
                continue
            fields, _ = entry.pattern.decode(word)
            if accept is None or accept(entry, fields):
                return entry, fields
        return None
