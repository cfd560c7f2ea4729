"""
Tests for the main entry point.

Tests cover:
- One-shot run exit codes
- Serve command dispatch
- Startup failures
- Job wiring from settings
"""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock, Mock, patch

from src.daemon.signal_job import JobSummary
from src.strategy.signal_config import DEFAULT_SIGNAL_CONFIG


@pytest.fixture
def mock_settings(tmp_path):
    """Create mock settings for testing."""
    settings = Mock()
    settings.log_level = "INFO"
    settings.log_file = None
    settings.log_json = False
    settings.email_configured = False
    settings.database_path = tmp_path / "signals.db"
    settings.binance_base_url = "https://api.binance.com/api/v3"
    settings.price_cache_seconds = 1.0
    settings.signal_job_max_workers = 2
    settings.indicator_max_age_seconds = 120
    settings.alert_recipients = []
    settings.signal_config.return_value = DEFAULT_SIGNAL_CONFIG
    return settings


class TestMain:

    def run_main(self, mock_settings, summary=None, argv=None):
        job = MagicMock()
        job.run.return_value = summary or JobSummary()
        with patch("src.main.get_settings", return_value=mock_settings), \
                patch("src.main.setup_logging"), \
                patch("src.main.get_logger", return_value=Mock()), \
                patch("src.main.build_job", return_value=job) as mock_build:
            from src.main import main
            result = main(argv or [])
        return result, mock_build, job

    def test_run_success(self, mock_settings):
        result, mock_build, job = self.run_main(mock_settings, JobSummary(processed=3, successful=3))

        assert result == 0
        mock_build.assert_called_once_with(mock_settings)
        job.run.assert_called_once()

    def test_run_releases_resources(self, mock_settings):
        _, _, job = self.run_main(mock_settings)

        job.notifier.close.assert_called_once()
        job.db.close.assert_called_once()

    def test_resources_released_when_run_fails(self, mock_settings):
        job = MagicMock()
        job.run.side_effect = RuntimeError("boom")
        with patch("src.main.get_settings", return_value=mock_settings), \
                patch("src.main.setup_logging"), \
                patch("src.main.get_logger", return_value=Mock()), \
                patch("src.main.build_job", return_value=job):
            from src.main import main

            assert main([]) == 1

        job.db.close.assert_called_once()

    def test_run_with_failures_returns_error(self, mock_settings):
        result, _, _ = self.run_main(mock_settings, JobSummary(processed=3, successful=2, failed=1))

        assert result == 1

    def test_serve_command(self, mock_settings):
        with patch("src.dashboard.server.main") as mock_serve:
            result, mock_build, _ = self.run_main(mock_settings, argv=["serve"])

        assert result == 0
        mock_serve.assert_called_once()
        mock_build.assert_not_called()

    def test_invalid_command(self, mock_settings):
        with pytest.raises(SystemExit):
            self.run_main(mock_settings, argv=["trade"])

    def test_startup_error_returns_1(self):
        with patch("src.main.get_settings", side_effect=ValueError("bad config")), \
                patch("src.main.get_logger") as mock_get_logger:
            mock_logger = Mock()
            mock_get_logger.return_value = mock_logger

            from src.main import main
            result = main([])

        assert result == 1
        mock_logger.critical.assert_called_once()

    def test_keyboard_interrupt_returns_0(self, mock_settings):
        job = MagicMock()
        job.run.side_effect = KeyboardInterrupt
        with patch("src.main.get_settings", return_value=mock_settings), \
                patch("src.main.setup_logging"), \
                patch("src.main.get_logger", return_value=Mock()), \
                patch("src.main.build_job", return_value=job):
            from src.main import main

            assert main([]) == 0


class TestBuildJob:

    def test_wires_job_from_settings(self, mock_settings):
        from src.main import build_job

        job = build_job(mock_settings)

        assert job.notifier is None
        assert job.config.max_workers == 2
        assert job.config.indicator_max_age == timedelta(seconds=120)
        assert job.db.db_path == mock_settings.database_path.resolve()
        assert job.price_source.cache.ttl_seconds == 1.0

    def test_notifier_when_email_configured(self, mock_settings):
        from src.main import build_job

        mock_settings.email_configured = True
        mock_settings.resend_api_key.get_secret_value.return_value = "re_123"
        mock_settings.alert_from_email = "alerts@example.com"
        mock_settings.email_notifications_enabled = True
        mock_settings.alert_recipients = ["a@example.com"]

        job = build_job(mock_settings)

        assert job.notifier is not None
        assert job.notifier.enabled is True
        assert job.config.alert_recipients == ["a@example.com"]
