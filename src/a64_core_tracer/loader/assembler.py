# a64_core_tracer/loader/assembler.py
"""
アセンブラの共通基盤。
AssemblyLoaderから利用されます。

行単位の字句処理（コメント除去、ラベル切り出し、ニーモニックとオペランドの分離）を提供します。
オペランドの列位置は元の行と一致するように保たれ、エラー位置の表示に使われます。
"""
import re
from abc import ABC, abstractmethod
from typing import List, NamedTuple, Optional, Tuple

from a64_core_tracer.common.types import SymbolMap
from a64_core_tracer.core.errors import AsmSyntaxError

_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/")
_LABEL_RE = re.compile(r"\s*([A-Za-z_.$][\w.$]*)\s*:")
_MNEMONIC_RE = re.compile(r"\s*(\S+)")

# @intent:data_structure 1行の解析結果。columnはオペランド文字列の行内開始位置です。
class ParsedLine(NamedTuple):
    label: Optional[str]
    mnemonic: Optional[str]
    operands: str
    column: int

# @intent:responsibility アセンブラの共通インターフェースを定義します。
class BaseAssembler(ABC):
    @abstractmethod
    def assemble_lines(self, lines: List[str]) -> Tuple[SymbolMap, bytes]:
        """
        アセンブリソースを行単位で解析し、シンボルマップとメモリイメージを返します。
        """
        pass

    # @intent:responsibility コメント（`//`, `;`, 1行内の `/* */`）を除去し、ラベル・ニーモニック・オペランドに分割します。
    # @intent:rationale ブロックコメントは同じ長さの空白に置き換え、オペランドの列位置を保ちます。
    def _parse_line(self, line: str) -> ParsedLine:
        line = line.rstrip("\r\n")
        line = _BLOCK_COMMENT_RE.sub(lambda m: " " * len(m.group()), line)
        if "/*" in line:
            start = line.index("/*")
            raise AsmSyntaxError("unterminated comment", start, len(line))
        for marker in ("//", ";"):
            position = line.find(marker)
            if position != -1:
                line = line[:position]

        label = None
        position = 0
        match = _LABEL_RE.match(line)
        if match:
            label = match.group(1)
            position = match.end()

        match = _MNEMONIC_RE.match(line, position)
        if not match:
            return ParsedLine(label, None, "", len(line))

        mnemonic = match.group(1).lower()
        column = match.end()
        operands = line[column:]
        stripped = operands.lstrip()
        column += len(operands) - len(stripped)
        return ParsedLine(label, mnemonic, stripped.rstrip(), column)
