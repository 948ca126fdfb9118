import logging

from backend.app.logging_config import setup_logging


def test_setup_logging_creates_files_per_area(tmp_path):
    log_dir = setup_logging(tmp_path / "logs")

    logging.getLogger("curator.collection").info("core line")
    logging.getLogger("curator.health").debug("health line")

    for name in ("curator", "curator.health"):
        for handler in logging.getLogger(name).handlers:
            handler.flush()

    assert (log_dir / "core.log").read_text().count("core line") == 1
    health_log = (log_dir / "health.log").read_text()
    assert "health line" in health_log
    assert "core line" not in health_log


def test_setup_logging_does_not_stack_handlers(tmp_path):
    setup_logging(tmp_path)
    before = len(logging.getLogger("curator").handlers)
    setup_logging(tmp_path)
    assert len(logging.getLogger("curator").handlers) == before
