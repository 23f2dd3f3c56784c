import pytest
from oem_unlocker.store import StateStore

IMEI = 123456789012345


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path)


class TestCheckpoint:
    """Test suite for checkpoint persistence"""

    def test_missing_file(self, store):
        assert store.load(IMEI) is None

    def test_save_then_load(self, store, tmp_path):
        store.save_checkpoint(IMEI, 1000000011377777)
        assert (tmp_path / f"saved_state_{IMEI}.txt").read_text() == "1000000011377777"
        assert store.load(IMEI) == 1000000011377777

    def test_last_write_wins(self, store):
        store.save_checkpoint(IMEI, 10)
        store.save_checkpoint(IMEI, 20)
        assert store.load(IMEI) == 20

    def test_zero_is_valid(self, store):
        store.save_checkpoint(IMEI, 0)
        assert store.load(IMEI) == 0

    @pytest.mark.parametrize("content", ["", "   \n", "abc", "-5", "12.5", "1e15", "²"])
    def test_unusable_content(self, store, content):
        store.checkpoint_path(IMEI).write_text(content)
        assert store.load(IMEI) is None

    def test_surrounding_whitespace_is_ignored(self, store):
        store.checkpoint_path(IMEI).write_text(" 1234\n")
        assert store.load(IMEI) == 1234

    def test_files_are_per_device(self, store):
        store.save_checkpoint(IMEI, 10)
        assert store.load(IMEI + 1) is None

    def test_creates_missing_directory(self, tmp_path):
        store = StateStore(tmp_path / "nested" / "state")
        store.save_checkpoint(IMEI, 10)
        assert store.load(IMEI) == 10

    def test_clear(self, store):
        assert not store.clear_checkpoint(IMEI)
        store.save_checkpoint(IMEI, 10)
        assert store.clear_checkpoint(IMEI)
        assert store.load(IMEI) is None


class TestResult:
    """Test suite for the result file"""

    def test_save_result(self, store, tmp_path):
        store.save_result(IMEI, 1000000000005000)
        content = (tmp_path / f"code_{IMEI}.txt").read_text()
        assert content == f"The bootloader code for the device with IMEI {IMEI} is: 1000000000005000"

    def test_load_result(self, store):
        assert store.load_result(IMEI) is None
        store.save_result(IMEI, 1000000000005000)
        assert store.load_result(IMEI) == 1000000000005000

    def test_result_does_not_touch_checkpoint(self, store):
        store.save_result(IMEI, 42)
        assert store.load(IMEI) is None
