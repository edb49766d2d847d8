import pytest

from qrbot.encoder import MAX_PAYLOAD_CHARS, QRMatrix, encode
from qrbot.errors import EmptyPayload, EncodingOverflow


class TestEncode:

    def test_matrix_is_square_and_sized_by_version(self):
        m = encode("https://example.com")
        assert isinstance(m, QRMatrix)
        assert m.size == 4 * m.version + 17
        assert m.size >= 21 and m.size % 2 == 1
        assert all(len(row) == m.size for row in m.modules)

    def test_finder_pattern_corner_is_dark(self):
        m = encode("hello")
        assert m[0, 0] and m[0, m.size - 1] and m[m.size - 1, 0]
        # separator ring around the top-left finder is light
        assert not m[7, 0]

    def test_same_text_same_matrix(self):
        assert encode("same text") == encode("same text")

    def test_longer_payload_grows_matrix(self):
        assert encode("x" * 200).size > encode("x").size

    def test_unicode_payload(self):
        assert encode("Привет, мир").size >= 21

    def test_over_character_limit(self):
        with pytest.raises(EncodingOverflow) as exc:
            encode("1" * (MAX_PAYLOAD_CHARS + 1))
        assert exc.value.limit == MAX_PAYLOAD_CHARS

    def test_over_capacity_at_level_h(self):
        # lowercase forces byte mode; version 40-H holds 1273 bytes
        with pytest.raises(EncodingOverflow):
            encode("a" * 2000)

    def test_forced_version_too_small(self):
        with pytest.raises(EncodingOverflow):
            encode("https://example.com/a/fairly/long/path", version=1)

    def test_overflow_is_a_value_error(self):
        with pytest.raises(ValueError):
            encode("a" * 2000)

    @pytest.mark.parametrize("payload", ["", "   ", "\n"])
    def test_empty_payload(self, payload):
        with pytest.raises(EmptyPayload):
            encode(payload)
