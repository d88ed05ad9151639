import logging

import pytest

from pertinfer.utils.logging_utils import LOGGER_NAME, setup_logging


@pytest.fixture
def clean_logger():
    logger = logging.getLogger(LOGGER_NAME)
    saved = list(logger.handlers)
    logger.handlers = []
    yield logger
    for h in logger.handlers:
        h.close()
    logger.handlers = saved


def test_repeated_setup_does_not_stack_handlers(tmp_path, monkeypatch, clean_logger):
    monkeypatch.chdir(tmp_path)
    setup_logging("run.log")
    setup_logging(tmp_path / "run.log")
    setup_logging("run.log", to_stdout=True)
    setup_logging(None, to_stdout=True)

    file_handlers = [h for h in clean_logger.handlers if isinstance(h, logging.FileHandler)]
    console = [h for h in clean_logger.handlers if type(h) is logging.StreamHandler]
    assert len(file_handlers) == 1
    assert len(console) == 1
    assert not clean_logger.propagate

    clean_logger.info("cycle done")
    file_handlers[0].flush()
    assert "cycle done" in (tmp_path / "run.log").read_text()


def test_second_file_gets_own_handler(tmp_path, clean_logger):
    setup_logging(tmp_path / "a.log")
    setup_logging(tmp_path / "b.log", level=logging.DEBUG)
    assert len(clean_logger.handlers) == 2
    assert clean_logger.level == logging.DEBUG
