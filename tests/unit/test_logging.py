"""
Unit tests for logging setup.
"""

import json
import logging

import pytest
import structlog

from zen_checkpoints import CheckpointService, load_config
from zen_checkpoints.utils.logging import JSONFormatter, get_logger, setup_logging


@pytest.fixture
def restore_logging():
    """Put the root logger and structlog back the way the test found them."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:

    def test_file_logging(self, tmp_path, restore_logging):
        result = setup_logging(
            app_name="zen-test",
            log_level="debug",
            log_dir=tmp_path / "logs",
            enable_console=False
        )

        get_logger("zen-test.unit").info("checkpoint_created", files=3)
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = (tmp_path / "logs" / "zen-test.log").read_text().splitlines()
        assert result["config"]["log_level"] == "debug"
        assert logging.getLogger().level == logging.DEBUG
        assert any("checkpoint_created" in line for line in lines)
        assert all(json.loads(line)["level"] for line in lines)

    def test_json_formatter_keeps_extras(self):
        record = logging.LogRecord("zen", logging.INFO, __file__, 1, "hello", None, None)
        record.path = "a.txt"
        record.opaque = object()

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "hello"
        assert data["path"] == "a.txt"
        assert isinstance(data["opaque"], str)

    def test_service_from_engine_config(self, project_dir, tmp_path, restore_logging):
        config = load_config(project_dir, extra_config={
            "logging": {"level": "warning", "format": "console", "directory": str(tmp_path / "logs")}
        })

        service = CheckpointService.from_engine_config(config)

        assert service.project_root == project_dir
        assert logging.getLogger().level == logging.WARNING
        assert (tmp_path / "logs").is_dir()
