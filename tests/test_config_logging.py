"""
Tests for settings and logging setup.
"""
from loguru import logger

from config import Settings, get_settings
from utils.logging import setup_logging


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.MAX_NUM_CLASS == 256
        assert (settings.MASK_ON_VALUE, settings.MASK_OFF_VALUE, settings.MASK_FILL_VALUE) == (255, 0, 255)

    def test_fields(self):
        assert set(Settings.model_fields) == {
            "LOG_LEVEL", "LOG_DIR", "MAX_NUM_CLASS",
            "MASK_ON_VALUE", "MASK_OFF_VALUE", "MASK_FILL_VALUE", "HIST_MAX_BINS",
        }

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("MASK_ON_VALUE", "1")
        get_settings.cache_clear()
        try:
            assert get_settings().MASK_ON_VALUE == 1
        finally:
            get_settings.cache_clear()


class TestLogging:
    def test_log_files(self, tmp_path):
        log_dir = tmp_path / "logs"
        setup_logging({"log_dir": str(log_dir), "log_level": "DEBUG"})
        logger.info("written to app.log")
        logger.error("written to both")
        logger.remove()
        assert "written to app.log" in (log_dir / "app.log").read_text()
        error_log = (log_dir / "error.log").read_text()
        assert "written to both" in error_log
        assert "written to app.log" not in error_log

    def test_console_only(self, tmp_path):
        log_dir = tmp_path / "none"
        setup_logging({"log_dir": str(log_dir), "file_logging": False})
        logger.remove()
        assert not log_dir.exists()
