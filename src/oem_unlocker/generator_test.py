import pytest
from oem_unlocker.generator import START_CODE, STEP_MULTIPLIER, ceiling_for, code_step, format_code, next_code


class TestCodeStep:
    """Test suite for the per-device step"""

    def test_perfect_square_imei(self):
        """A perfect square IMEI gives an exact integer step"""
        assert code_step(1) == STEP_MULTIPLIER
        assert code_step(4) == 2 * STEP_MULTIPLIER
        assert code_step(10000) == 100 * STEP_MULTIPLIER

    def test_distinct_imeis_have_distinct_steps(self):
        """Two devices never share a sequence"""
        imeis = [1, 2, 3, 123456789012345, 123456789012346, 356938035643809]
        steps = {code_step(imei) for imei in imeis}
        assert len(steps) == len(imeis)

    @pytest.mark.parametrize("imei", [0, -5])
    def test_invalid_imei(self, imei):
        """The IMEI must be positive"""
        with pytest.raises(ValueError, match="positive"):
            code_step(imei)


class TestNextCode:
    """Test suite for candidate generation"""

    def test_integer_step(self):
        assert next_code(START_CODE, 1) == START_CODE + 1024
        assert next_code(1000, 4) == 3048

    def test_fractional_step_rounds_to_nearest(self):
        """sqrt(2) * 1024 = 1448.15..., rounds down"""
        assert next_code(0, 2) == 1448
        assert next_code(1000, 2) == 2448
        # sqrt(3) * 1024 = 1773.62..., rounds up
        assert next_code(0, 3) == 1774

    def test_deterministic(self):
        imei = 123456789012345
        assert next_code(START_CODE, imei) == next_code(START_CODE, imei)

    def test_strictly_increasing(self):
        """Repeated application never goes backwards"""
        imei = 123456789012345
        code = START_CODE
        for _ in range(1000):
            following = next_code(code, imei)
            assert following > code
            code = following

    def test_large_codes_keep_integer_precision(self):
        """Codes above 2**53 are still computed exactly"""
        code = 9_999_999_999_999_001
        assert next_code(code, 1) == code + 1024


class TestCeiling:
    """Test suite for the code space bound"""

    def test_one_more_digit(self):
        assert ceiling_for(START_CODE) == 10_000_000_000_000_000
        assert ceiling_for(1000) == 10000
        assert ceiling_for(0) == 10

    def test_format_code(self):
        assert format_code(START_CODE) == "1000000000000000"
        assert format_code(42) == "0000000000000042"
