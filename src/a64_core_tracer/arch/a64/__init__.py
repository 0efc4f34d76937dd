"""
A64 Architecture Package
"""
from .cpu import A64Cpu
from .state import A64CpuState
