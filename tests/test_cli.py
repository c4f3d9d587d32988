"""
Tests for the CLI interface.
"""

import os
import shutil
import tempfile

import yaml
from typer.testing import CliRunner

from lumina_gateway.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, app
from lumina_gateway.storage.models import UserQuota
from lumina_gateway.storage.repository import GatewayRepository, initialize_schema

runner = CliRunner()


class TestCLI:
    """Test CLI commands against a temporary database."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        self.config_path = os.path.join(self.temp_dir, "gateway.yaml")
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.dump({"storage": {"db_path": self.db_path}, "quota": {"daily_limit": 25}}, f)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_init_creates_database(self):
        result = runner.invoke(app, ["init", "--config", self.config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized" in result.output
        assert os.path.exists(self.db_path)

    def test_init_with_bad_config(self):
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.dump({"storage": {"path": self.db_path}}, f)

        result = runner.invoke(app, ["init", "--config", self.config_path])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error initializing database" in result.output

    def test_status_shows_config(self):
        result = runner.invoke(app, ["status", "--config", self.config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "25" in result.output
        assert "v2" in result.output
        assert "Request limits" in result.output

    def test_status_missing_config(self):
        result = runner.invoke(app, ["status", "--config", os.path.join(self.temp_dir, "nope.yaml")])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output

    def test_quota_for_unknown_user(self):
        initialize_schema(self.db_path)

        result = runner.invoke(app, ["quota", "nobody", "--config", self.config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "never" in result.output

    def test_quota_for_known_user(self):
        initialize_schema(self.db_path)
        GatewayRepository(self.db_path).insert_quota(UserQuota("alice", 3, "2000-01-01"))

        result = runner.invoke(app, ["quota", "alice", "--config", self.config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "2000-01-01" in result.output

    def test_cache_info_empty(self):
        initialize_schema(self.db_path)

        result = runner.invoke(app, ["cache-info", "--config", self.config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Cache is empty" in result.output

    def test_cache_info_counts(self):
        initialize_schema(self.db_path)
        repository = GatewayRepository(self.db_path)
        repository.insert_cache_entry("a", ["x"], "discoverConcepts")
        repository.insert_cache_entry("b", ["y"], "discoverConcepts")

        result = runner.invoke(app, ["cache-info", "--config", self.config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "discoverConcepts" in result.output
        assert "2" in result.output

    def test_cache_info_without_schema_fails(self):
        result = runner.invoke(app, ["cache-info", "--config", self.config_path])
        assert result.exit_code == EXIT_CODE_FAIL
