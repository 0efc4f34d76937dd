import unittest

from a64_core_tracer.transport.memory import MemoryImage
from a64_core_tracer.arch.a64.disassembler import disassemble, format_instruction


class TestA64Disassembler(unittest.TestCase):
    def setUp(self):
        self.memory = MemoryImage(0x20)

    def _write_words(self, address, words):
        for index, word in enumerate(words):
            self.memory.write(address + index * 4, 4, word)

    def test_disassemble_range(self):
        self._write_words(0, [0xD2800C80, 0x8B030041, 0x54000040, 0x00000000])
        result = disassemble(self.memory, 0, 16)
        self.assertEqual(result, [
            (0, "D2800C80", "mov x0, #100"),
            (4, "8B030041", "add x1, x2, x3"),
            (8, "54000040", "b.eq 0x10"),
            (12, "00000000", ".word 0x00000000"),
        ])

    def test_unaligned_start_is_rounded_down(self):
        self._write_words(4, [0xD503201F])
        result = disassemble(self.memory, 6, 2)
        self.assertEqual(result, [(4, "D503201F", "nop")])

    def test_stops_at_memory_end(self):
        result = disassemble(self.memory, 0x18, 0x20)
        self.assertEqual([address for address, _, _ in result], [0x18, 0x1C])

    def test_does_not_record_access(self):
        self.memory.tracking = True
        disassemble(self.memory, 0, 8)
        self.assertEqual(self.memory.get_and_clear_activity_log(), [])

    def test_aliases(self):
        self.assertEqual(format_instruction(0xF100041F), "cmp x0, #1")   # subs xzr, x0, #1
        self.assertEqual(format_instruction(0xAA0103E0), "mov x0, x1")   # orr x0, xzr, x1
        self.assertEqual(format_instruction(0xD65F03C0), "ret")          # ret x30
        self.assertEqual(format_instruction(0xD65F00A0), "ret x5")
        self.assertEqual(format_instruction(0x9B027C20), "mul x0, x1, x2")
        self.assertEqual(format_instruction(0x9B020C20), "madd x0, x1, x2, x3")

    def test_pair_and_bitfield(self):
        self.assertEqual(format_instruction(0xA9BF7B9D), "stp x29, x30, [x28, #-16]!")
        self.assertEqual(format_instruction(0xD3441C20), "ubfx x0, x1, #4, #4")
        self.assertEqual(format_instruction(0x93407C20), "sxtw x0, w1")


if __name__ == '__main__':
    unittest.main()
