"""
Unit tests for the command line entry point.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from festival_ingest import cli
from festival_ingest.core.config import get_settings


@pytest.fixture(autouse=True)
def cli_env(monkeypatch):
    """In-memory database and no global logging reconfiguration."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite://")
    monkeypatch.setattr(cli, "configure_logging", MagicMock())
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestParser:

    def test_scrape_flags(self):
        args = cli.build_parser().parse_args(["scrape", "https://festival.example/", "--import"])

        assert args.command == "scrape"
        assert args.url == "https://festival.example/"
        assert args.do_import is True
        assert args.geocode is False

    def test_import_flags(self):
        args = cli.build_parser().parse_args(
            ["--session-id", "s1", "import", "festival.json", "--allow-duplicates", "--validate-only"]
        )

        assert args.session_id == "s1"
        assert args.allow_duplicates is True
        assert args.validate_only is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestImportCommand:

    def test_missing_file(self, tmp_path, capsys):
        """Test an unreadable file exits with 1."""
        assert cli.main(["import", str(tmp_path / "missing.json")]) == 1
        assert "Could not read" in capsys.readouterr().err

    def test_non_object_file(self, tmp_path, capsys):
        path = tmp_path / "list.json"
        path.write_text("[1, 2, 3]")

        assert cli.main(["import", str(path)]) == 1
        assert "JSON object" in capsys.readouterr().err

    def test_validate_only(self, tmp_path, monkeypatch, festival_payload):
        """Test validate-only prints the result and exits 0."""
        path = tmp_path / "festival.json"
        path.write_text(json.dumps(festival_payload))
        printed = []
        monkeypatch.setattr(cli, "_print_json", printed.append)

        assert cli.main(["import", str(path), "--validate-only"]) == 0

        output = printed[0]
        assert output["success"] is True
        assert output["festival_id"] is None


class TestHealthCommand:

    def _provider(self, reachable: bool) -> MagicMock:
        provider = MagicMock(provider_name="anthropic", model_name="claude-test")
        provider.health_check = AsyncMock(return_value=reachable)
        return provider

    def test_healthy(self, monkeypatch):
        """Test a reachable database and provider exit 0."""
        printed = []
        monkeypatch.setattr(cli, "_print_json", printed.append)
        monkeypatch.setattr(cli, "create_provider", lambda settings: self._provider(True))

        assert cli.main(["health"]) == 0

        assert printed[0]["status"] == "healthy"
        assert printed[0]["database"] == "connected"
        assert printed[0]["ai_provider"] == {
            "name": "anthropic",
            "model": "claude-test",
            "reachable": True,
        }

    def test_unreachable_provider_is_degraded(self, monkeypatch):
        printed = []
        monkeypatch.setattr(cli, "_print_json", printed.append)
        monkeypatch.setattr(cli, "create_provider", lambda settings: self._provider(False))

        assert cli.main(["health"]) == 1
        assert printed[0]["status"] == "degraded"
        assert printed[0]["database"] == "connected"
