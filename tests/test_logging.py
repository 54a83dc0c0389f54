import json
import logging

from tourguide.logging_config import configure_logging


def test_json_logging(capsys, tmp_path):
    configure_logging(level="INFO", json_format=True, log_file=str(tmp_path / "engine.log"))
    logger = logging.getLogger("test.json")
    logger.info("hello json")

    captured = capsys.readouterr()
    record = json.loads(captured.err.strip())
    assert record["message"] == "hello json"
    assert record["level"] == "INFO"
    assert record["logger"] == "test.json"
    assert "timestamp" in record


def test_plain_logging(capsys, tmp_path):
    configure_logging(level="INFO", json_format=False, log_file=str(tmp_path / "engine.log"))
    logger = logging.getLogger("test.plain")
    logger.info("hello plain")

    captured = capsys.readouterr()
    line = captured.err.strip()
    assert "hello plain" in line
    assert "test.plain" in line
    try:
        json.loads(line)
        assert False, "Expected plain text, got JSON"
    except json.JSONDecodeError:
        pass


def test_log_level_filtering(capsys, tmp_path):
    configure_logging(level="WARNING", json_format=True, log_file=str(tmp_path / "engine.log"))
    logger = logging.getLogger("test.level")
    logger.info("should not appear")
    logger.warning("should appear")

    captured = capsys.readouterr()
    lines = [l for l in captured.err.strip().splitlines() if l]
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["message"] == "should appear"


def test_log_file_written(tmp_path):
    log_file = tmp_path / "logs" / "engine.log"
    configure_logging(level="INFO", json_format=True, log_file=str(log_file))
    logging.getLogger("test.file").info("to disk")
    for handler in logging.getLogger().handlers:
        handler.flush()

    record = json.loads(log_file.read_text().strip().splitlines()[-1])
    assert record["message"] == "to disk"


def test_noisy_loggers_silenced(tmp_path):
    configure_logging(level="DEBUG", log_file=str(tmp_path / "engine.log"))
    for name in ("httpx", "httpcore", "apscheduler"):
        assert logging.getLogger(name).level == logging.WARNING
    assert not logging.getLogger("apscheduler").isEnabledFor(logging.INFO)
    assert logging.getLogger("tourguide.context.dispatcher").isEnabledFor(logging.DEBUG)


def test_empty_log_file_logs_to_stderr_only(capsys):
    configure_logging(level="INFO", json_format=True, log_file="")
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert not isinstance(handlers[0], logging.FileHandler)

    logging.getLogger("test.stderr").info("only here")
    assert json.loads(capsys.readouterr().err.strip())["message"] == "only here"


def test_reconfigure_replaces_handlers(tmp_path):
    configure_logging(log_file=str(tmp_path / "a.log"))
    configure_logging(log_file=str(tmp_path / "b.log"))
    files = [h.baseFilename for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
    assert files == [str(tmp_path / "b.log")]
