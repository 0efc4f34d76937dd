# a64_core_tracer/arch/a64/instructions/maps.py
"""
実行操作名と命令実装のマッピング定義。
"""
from . import load
from . import alu
from . import control

# @intent:map オペコードテーブルの実行操作名から実行関数へのマッピングテーブル。
EXECUTE_MAP = {
    # Data processing
    "addsub_ext": alu.execute_addsub_ext,
    "addsub_sreg": alu.execute_addsub_sreg,
    "addsub_imm": alu.execute_addsub_imm,
    "addsub_carry": alu.execute_addsub_carry,
    "logic_sreg": alu.execute_logic_sreg,
    "logic_imm": alu.execute_logic_imm,
    "movewide": alu.execute_movewide,
    "bitfield": alu.execute_bitfield,
    "extract": alu.execute_extract,
    "dp1": alu.execute_dp1,
    "dp2": alu.execute_dp2,
    "dp3": alu.execute_dp3,
    "pcrel": alu.execute_pcrel,

    # Control
    "branch_imm": control.execute_branch_imm,
    "branch_cond": control.execute_branch_cond,
    "compare_branch": control.execute_compare_branch,
    "test_branch": control.execute_test_branch,
    "branch_reg": control.execute_branch_reg,
    "hint": control.execute_hint,
    "exception": control.execute_exception,

    # Load/Store
    "ldst_uimm": load.execute_ldst_uimm,
    "ldst_imm9": load.execute_ldst_imm9,
    "ldst_reg": load.execute_ldst_reg,
    "ldr_literal": load.execute_ldr_literal,
    "ldstp": load.execute_ldstp,
}
