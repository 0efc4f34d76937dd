# a64_core_tracer/arch/a64/pattern.py
"""
ビットパターンテンプレート

"0"/"1" のリテラルビットとフィールド文字からなる固定長テンプレートを、
エンコード・デコードの両方で使う位置マップへ一度だけコンパイルします。
テンプレートはMSBから走査され、同じ文字が離れた位置に現れる場合（分散フィールド）、
最初に現れた位置がフィールド値のMSBになります。
"""
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from a64_core_tracer.core.errors import EncodingTableError

# @intent:responsibility テンプレート文字列を (フィールドビット, 命令語ビット) の対応表に変換し、値の注入・抽出を行います。
# @intent:rationale 位置の計算は構築時に一度だけ行い、encode/decodeは同じ対応表を共有します。
class BitPattern:
    """
    固定長のビットパターン。空白と `_` は読みやすさのための区切りとして無視されます。
    """
    def __init__(self, template: str, widths: Optional[Mapping[str, int]] = None, word_bits: int = 32):
        text = template.replace(" ", "").replace("_", "")
        if len(text) != word_bits:
            raise EncodingTableError(
                f"Pattern '{template}' has {len(text)} bits, expected {word_bits}")

        literal_mask = 0
        literal_value = 0
        positions: Dict[str, list] = {}
        for index, char in enumerate(text):
            bit = word_bits - 1 - index
            if char in "01":
                literal_mask |= 1 << bit
                if char == "1":
                    literal_value |= 1 << bit
            elif char.isalpha():
                positions.setdefault(char, []).append(bit)
            else:
                raise EncodingTableError(f"Illegal character '{char}' in pattern '{template}'")

        fields: Dict[str, Tuple[Tuple[int, int], ...]] = {}
        for letter, word_bits_of_field in positions.items():
            width = len(word_bits_of_field)
            if widths and letter in widths and widths[letter] != width:
                raise EncodingTableError(
                    f"Field '{letter}' in pattern '{template}' spans {width} bits, declared {widths[letter]}")
            fields[letter] = tuple(
                (width - 1 - order, word_bit) for order, word_bit in enumerate(word_bits_of_field))

        self.template = text
        self.word_bits = word_bits
        self.literal_mask = literal_mask
        self.literal_value = literal_value
        self.fields: Mapping[str, Tuple[Tuple[int, int], ...]] = MappingProxyType(fields)

    def __repr__(self) -> str:
        return f"BitPattern('{self.template}')"

    # @intent:responsibility フィールドのビット幅を返します。
    def width(self, letter: str) -> int:
        return len(self.fields[letter])

    def has_field(self, letter: str) -> bool:
        return letter in self.fields

    # @intent:responsibility リテラルビットと各フィールド値から命令語を組み立てます。
    # @intent:pre-condition 全てのフィールドに値が与えられ、各値がフィールド幅に収まっている必要があります。
    def encode(self, values: Mapping[str, int]) -> int:
        word = self.literal_value
        for letter, pairs in self.fields.items():
            if letter not in values:
                raise ValueError(f"Missing value for field '{letter}' in pattern '{self.template}'")
            value = values[letter]
            if value < 0 or value >> len(pairs):
                raise ValueError(f"Value {value} does not fit {len(pairs)}-bit field '{letter}'")
            for field_bit, word_bit in pairs:
                if (value >> field_bit) & 1:
                    word |= 1 << word_bit
        return word

    # @intent:responsibility 命令語から各フィールド値を抽出し、リテラルビットが一致したかを返します。
    # @intent:post-condition matchedがFalseの場合でもフィールド値は返されますが、呼び出し側は無視すべきです。
    def decode(self, word: int) -> Tuple[Dict[str, int], bool]:
        values = {}
        for letter, pairs in self.fields.items():
            value = 0
            for field_bit, word_bit in pairs:
                if (word >> word_bit) & 1:
                    value |= 1 << field_bit
            values[letter] = value
        return values, self.matches(word)

    def matches(self, word: int) -> bool:
        return (word & self.literal_mask) == self.literal_value
