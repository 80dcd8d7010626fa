import logging

from event_chain import EventChain
from event_chain.logging_config import LOGGER_NAMESPACE, configure_logging, get_logger


def _namespace_handlers():
    return logging.getLogger(LOGGER_NAMESPACE).handlers


def test_log_file_receives_callback_errors(tmp_path):
    log_file = tmp_path / "logs" / "events.log"
    configure_logging(level="DEBUG", log_file=log_file)
    try:
        bus = EventChain(name="files")

        def broken():
            raise RuntimeError("boom")

        bus.register("k", broken)
        bus.emit("k")

        for handler in _namespace_handlers():
            handler.flush()
        text = log_file.read_text(encoding="utf-8")
        assert "event_callback_error" in text
        assert "boom" in text
    finally:
        configure_logging(level="WARNING", colors=False)


def test_reconfigure_replaces_and_closes_handler(tmp_path):
    configure_logging(level="INFO", log_file=tmp_path / "first.log")
    first = list(_namespace_handlers())
    try:
        configure_logging(level="INFO", log_file=tmp_path / "second.log")
        second = _namespace_handlers()

        assert len(first) == 1
        assert len(second) == 1
        assert second[0] is not first[0]
        assert first[0].stream is None
    finally:
        configure_logging(level="WARNING", colors=False)


def test_configure_leaves_root_logger_alone():
    root_handlers = list(logging.getLogger().handlers)
    configure_logging(level="WARNING", colors=False)
    assert logging.getLogger().handlers == root_handlers
    assert logging.getLogger(LOGGER_NAMESPACE).propagate is False


def test_get_logger_binds_context():
    logger = get_logger("event_chain.tests", bus="ctx")
    assert logger is not None
    assert get_logger("event_chain.tests") is not None
