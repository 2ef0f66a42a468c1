import logging

from mrpool.core.log import FALLBACK_HANDLER, StructlogLogger, configure_logging, get_logger


def test_get_logger_returns_named_wrapper():
    logger = get_logger("mrpool.test")
    assert isinstance(logger, StructlogLogger)
    assert logger.name == "mrpool.test"


def test_bind_keeps_the_wrapper_interface():
    bound = get_logger("mrpool.test").bind(worker_id=3)
    assert isinstance(bound, StructlogLogger)
    assert bound.name == "mrpool.test"


def test_events_reach_stdlib_logging(caplog):
    with caplog.at_level(logging.INFO, logger="mrpool.test"):
        get_logger("mrpool.test").info("something_happened", items=3)

    messages = [record.getMessage() for record in caplog.records if record.name == "mrpool.test"]
    assert any("something_happened" in m and '"items": 3' in m for m in messages)


def test_configure_logging_replaces_handlers_of_the_same_name():
    root_logger = logging.getLogger()
    level = root_logger.level
    handlers = []
    try:
        for _ in range(2):
            handler = logging.NullHandler()
            handler.set_name("mrpool_test_handler")
            handlers.append(handler)
            configure_logging(handler, "ERROR")

        names = [h.get_name() for h in root_logger.handlers]
        assert names.count("mrpool_test_handler") == 1
        assert handlers[1] in root_logger.handlers
        assert FALLBACK_HANDLER not in names
        assert root_logger.level == logging.ERROR
    finally:
        for handler in handlers:
            root_logger.removeHandler(handler)
        root_logger.setLevel(level)
