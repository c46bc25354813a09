import pytest

from mysqlboot.errors import InitializationError
from mysqlboot.models import InitializationState
from mysqlboot.services.init_state import InitStateDetector


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args)


def test_missing_data_dir_is_pristine(tmp_path):
    detector = InitStateDetector(logger=DummyLogger())

    assert detector.detect(str(tmp_path / "data")) == InitializationState.PRISTINE


def test_empty_data_dir_is_pristine(tmp_path):
    (tmp_path / "lost+found").mkdir()
    logger = DummyLogger()

    assert InitStateDetector(logger=logger).detect(str(tmp_path)) == InitializationState.PRISTINE
    assert logger.warnings == []


@pytest.mark.parametrize("entry", ["mysql", "ibdata1", "auto.cnf"])
def test_engine_files_mark_existing(tmp_path, entry):
    if entry == "mysql":
        (tmp_path / entry).mkdir()
    else:
        (tmp_path / entry).write_bytes(b"\0")

    detector = InitStateDetector(logger=DummyLogger())

    assert detector.detect(str(tmp_path)) == InitializationState.EXISTING


def test_unrelated_files_warn_but_stay_pristine(tmp_path):
    (tmp_path / "README").write_text("hello", encoding="utf-8")
    logger = DummyLogger()

    assert InitStateDetector(logger=logger).detect(str(tmp_path)) == InitializationState.PRISTINE
    assert "README" in logger.warnings[0]


def test_data_dir_that_is_a_file_fails(tmp_path):
    target = tmp_path / "data"
    target.write_text("", encoding="utf-8")

    with pytest.raises(InitializationError, match="not a directory"):
        InitStateDetector(logger=DummyLogger()).detect(str(target))
