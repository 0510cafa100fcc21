import logging

from rich.logging import RichHandler

from roomrevamp.logging import get_logger, setup_logging


def test_setup_is_idempotent():
    logger = setup_logging("DEBUG", logger_name="roomrevamp.test-setup")
    setup_logging("WARNING", logger_name="roomrevamp.test-setup")

    handlers = [h for h in logger.handlers if isinstance(h, RichHandler)]
    assert len(handlers) == 1
    assert handlers[0].level == logging.WARNING
    assert logger.level == logging.WARNING
    assert logger.propagate is False


def test_unknown_level_falls_back_to_info():
    logger = setup_logging("chatty", logger_name="roomrevamp.test-level")
    assert logger.level == logging.INFO


def test_http_client_loggers_are_quieted():
    setup_logging("DEBUG", logger_name="roomrevamp.test-quiet", quiet=("roomrevamp-test-http",))
    assert logging.getLogger("roomrevamp-test-http").level == logging.WARNING

    setup_logging("ERROR", logger_name="roomrevamp.test-quiet", quiet=("roomrevamp-test-http",))
    assert logging.getLogger("roomrevamp-test-http").level == logging.ERROR


def test_get_logger_defaults_to_package():
    assert get_logger().name == "roomrevamp"
    assert get_logger("roomrevamp.chain").name == "roomrevamp.chain"
