# tests/loader/test_loader.py
"""
a64_core_tracer.loader.loaderモジュールの単体テスト。
Intel HEX、生バイナリ、アセンブリソースのロード機能を検証します。
"""
import pytest

from a64_core_tracer.loader.loader import AssemblyLoader, IntelHexLoader, RawBinaryLoader

# @intent:test_suite コードローダー機能の検証。


class TestIntelHexLoader:
    """
    IntelHexLoaderの単体テスト。
    """

    @pytest.fixture
    def setup_loader(self, tmp_path):
        return IntelHexLoader(), bytearray(0x20000), tmp_path

    def test_load_simple_hex_data(self, setup_loader):
        loader, image, tmp_path = setup_loader
        hex_content = """
        :020000001234B8
        :02000200ABCD84
        :00000001FF
        """
        hex_file = tmp_path / "simple.hex"
        hex_file.write_text(hex_content)

        loader.load_intel_hex(str(hex_file), image)

        assert image[0:4] == bytes([0x12, 0x34, 0xAB, 0xCD])

    def test_load_instruction_word(self, setup_loader):
        loader, image, _ = setup_loader
        loader.load_intel_hex_lines([":040000001F2003D5E5", ":00000001FF"], image)
        assert int.from_bytes(image[0:4], "little") == 0xD503201F

    # @intent:test_case_extended_address 拡張リニアアドレスレコードが上位16ビットとして加算されることを検証します。
    def test_load_extended_linear_address_hex(self, setup_loader):
        loader, image, _ = setup_loader
        loader.load_intel_hex_lines([
            ":020000040001F9 ; Set ELA to 0x0001xxxx",
            ":021000001234A8",
            ":00000001FF",
        ], image)
        assert image[0x11000:0x11002] == bytes([0x12, 0x34])
        assert image[0x1000:0x1002] == bytes(2)

    def test_stops_at_end_of_file_record(self, setup_loader):
        loader, image, _ = setup_loader
        loader.load_intel_hex_lines([":00000001FF", ":020000001234B8"], image)
        assert image[0:2] == bytes(2)

    def test_ignores_blank_and_non_record_lines(self, setup_loader):
        loader, image, _ = setup_loader
        loader.load_intel_hex_lines(["", "# header", ":020000001234B8"], image)
        assert image[0:2] == bytes([0x12, 0x34])

    # @intent:test_case_errors 不正なレコードは行番号付きのValueErrorになることを検証します。
    def test_checksum_mismatch(self, setup_loader):
        loader, image, _ = setup_loader
        with pytest.raises(ValueError, match="Checksum mismatch on line 2: Calculated E5, Expected E6"):
            loader.load_intel_hex_lines([":020000001234B8", ":040000001F2003D5E6"], image)

    def test_unknown_record_type(self, setup_loader):
        loader, image, _ = setup_loader
        with pytest.raises(ValueError, match="Unknown Intel HEX record type 06 on line 1"):
            loader.load_intel_hex_lines([":00000006FA"], image)

    def test_data_length_mismatch(self, setup_loader):
        loader, image, _ = setup_loader
        with pytest.raises(ValueError, match="Data length mismatch on line 1"):
            loader.load_intel_hex_lines([":0200000012EC"], image)

    def test_too_short(self, setup_loader):
        loader, image, _ = setup_loader
        with pytest.raises(ValueError, match="Too short"):
            loader.load_intel_hex_lines([":0000"], image)

    def test_data_outside_image(self):
        image = bytearray(4)
        with pytest.raises(ValueError, match="outside memory image of size 4"):
            IntelHexLoader().load_intel_hex_lines([":0100100001EE"], image)


class TestRawBinaryLoader:
    def test_load_at_base_address(self, tmp_path):
        binary = tmp_path / "program.bin"
        binary.write_bytes(bytes([0x1F, 0x20, 0x03, 0xD5]))
        image = bytearray(16)
        RawBinaryLoader().load_raw(str(binary), image, base_address=8)
        assert image[8:12] == bytes([0x1F, 0x20, 0x03, 0xD5])
        assert image[0:8] == bytes(8)

    def test_does_not_fit(self, tmp_path):
        binary = tmp_path / "program.bin"
        binary.write_bytes(bytes(8))
        with pytest.raises(ValueError, match="does not fit memory image of size 4"):
            RawBinaryLoader().load_raw(str(binary), bytearray(4))


class TestAssemblyLoader:
    def test_load_assembly_file(self, tmp_path):
        source = tmp_path / "program.s"
        source.write_text("start:\n    mov x0, #1\nloop: b loop\n", encoding="utf-8")
        symbols, image = AssemblyLoader().load_assembly(str(source), 0x40)
        assert symbols == {"start": 0, "loop": 4}
        assert len(image) == 0x40
        assert int.from_bytes(image[0:4], "little") == 0xD2800020
        assert int.from_bytes(image[4:8], "little") == 0x14000000

    def test_big_endian(self):
        _, image = AssemblyLoader().assemble_source(["nop"], 16, endianness="big")
        assert image[0:4] == bytes.fromhex("D503201F")

    # @intent:test_case_assembly_errors 全てのエラー行が1つのValueErrorにまとめて報告されることを検証します。
    def test_errors_reported_together(self):
        with pytest.raises(ValueError, match="Assembly failed with 2 error\\(s\\)") as info:
            AssemblyLoader().assemble_source(["nop", "frob x0", "b nowhere"], 0x40)
        message = str(info.value)
        assert "line 2: unknown mnemonic 'frob'" in message
        assert "line 3: undefined symbol 'nowhere'" in message

    def test_unsupported_architecture(self):
        with pytest.raises(ValueError, match="Unsupported architecture for assembly loading: Z80"):
            AssemblyLoader().assemble_source(["nop"], 0x40, architecture="Z80")
