"""
Unit tests for utilities.
"""

import logging
from datetime import datetime, timedelta, timezone

from pokedm.utils.clock import epoch_ms, isoformat, now_iso
from pokedm.utils.logger import ColoredFormatter, get_logger, set_module_level, setup_logging


class TestLogger:
    """Test the logging utilities"""

    def test_get_logger(self):
        """get_logger returns the named logger"""
        logger = get_logger("test")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "test"

    def test_setup_logging_writes_file(self, tmp_path):
        """A log file is created along with its directory"""
        log_file = tmp_path / "logs" / "pokedm.log"
        setup_logging(level="DEBUG", log_file=str(log_file), enable_colors=False)
        get_logger("pokedm.test").info("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert log_file.exists()
        assert "hello file" in log_file.read_text()
        assert logging.getLogger().level == logging.DEBUG

        setup_logging(level="INFO", enable_colors=False)

    def test_setup_logging_quiets_noisy_loggers(self):
        setup_logging(level="DEBUG", enable_colors=False)
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        setup_logging(level="INFO", enable_colors=False)

    def test_set_module_level(self):
        set_module_level("pokedm.engine.orchestrator", "WARNING")
        assert logging.getLogger("pokedm.engine.orchestrator").level == logging.WARNING
        logging.getLogger("pokedm.engine.orchestrator").setLevel(logging.NOTSET)

    def test_colored_formatter_leaves_record_untouched(self):
        """Coloring works on a copy so other handlers see plain names"""
        record = logging.LogRecord("pokedm.x", logging.WARNING, __file__, 1, "careful", None, None)
        output = ColoredFormatter("%(levelname)s %(name)s %(message)s").format(record)

        assert "\033[33m" in output
        assert "careful" in output
        assert record.levelname == "WARNING"
        assert record.name == "pokedm.x"


class TestClock:
    """Test the time helpers"""

    def test_isoformat_has_millisecond_precision(self):
        moment = datetime(2025, 6, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)
        assert isoformat(moment) == "2025-06-01T12:30:45.123Z"

    def test_isoformat_converts_to_utc(self):
        moment = datetime(2025, 6, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert isoformat(moment) == "2025-06-01T12:00:00.000Z"

    def test_naive_datetimes_are_utc(self):
        naive = datetime(2025, 1, 1)
        assert epoch_ms(naive) == epoch_ms(naive.replace(tzinfo=timezone.utc))

    def test_now_iso_uses_clock(self, clock):
        assert now_iso(clock) == "2025-06-01T12:00:00.000Z"
        clock.advance(seconds=1)
        assert now_iso(clock) == "2025-06-01T12:00:01.000Z"
