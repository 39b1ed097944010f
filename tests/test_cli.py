"""
Test CLI functionality of the OpenAPI directory.

Custom spec commands run end to end against a temporary cache directory;
directory queries run against a mocked aggregator.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from openapi_directory import __version__
from openapi_directory.cli.main import cli, cli_context
from openapi_directory.core.exceptions import NetworkError
from openapi_directory.core.models import (
    ApiSummary,
    DirectoryMetrics,
    Pagination,
    PaginatedResults,
    ProviderStats,
)


class TestCLI:
    """Test top-level CLI behaviour."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_version(self):
        result = self.runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self):
        result = self.runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("import", "list", "remove", "search", "metrics", "cache"):
            assert command in result.output


class TestSpecCommands:
    """Test custom spec commands end to end."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path, spec_file, write_spec):
        """Set up test fixtures."""
        self.runner = CliRunner()
        self.cache_dir = tmp_path / "cli-cache"
        self.spec_file = spec_file
        self.write_spec = write_spec

    def invoke(self, *args):
        return self.runner.invoke(cli, ["--cache-dir", str(self.cache_dir), *args])

    def test_import_and_list(self):
        """Test importing a spec and listing it as JSON."""
        result = self.invoke("import", self.spec_file)

        assert result.exit_code == 0, result.output
        assert "Successfully imported petstore:2.1.0" in result.output
        assert "custom:petstore:2.1.0" in result.output
        assert (self.cache_dir / ".invalidate").exists()

        listed = self.invoke("list", "--output-format", "json")
        rows = json.loads(listed.stdout)
        assert [row["id"] for row in rows] == ["custom:petstore:2.1.0"]

        table = self.invoke("list")
        assert "Custom Specs (1 total)" in table.output

    def test_import_with_name_and_version(self):
        result = self.invoke("import", self.spec_file, "--name", "pets", "--version", "3.0.0")

        assert result.exit_code == 0, result.output
        assert "custom:pets:3.0.0" in result.output

    def test_import_duplicate(self):
        self.invoke("import", self.spec_file)
        result = self.invoke("import", self.spec_file)

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_import_invalid_spec(self, sample_spec):
        del sample_spec["info"]["title"]
        result = self.invoke("import", self.write_spec(sample_spec, "untitled.json"))

        assert result.exit_code == 1
        assert '"info.title"' in result.output

    def test_import_blocked(self, sample_spec):
        """Test that a critical finding is reported and nothing is stored."""
        sample_spec["components"] = {"schemas": {"Auth": {"example": "token=abcdef1234567890"}}}
        result = self.invoke("import", self.write_spec(sample_spec, "leaky.json"))

        assert result.exit_code == 1
        assert "Import blocked" in result.output
        assert json.loads(self.invoke("list", "-o", "json").stdout) == []

    def test_list_empty(self):
        result = self.invoke("list")

        assert result.exit_code == 0
        assert "No custom specs imported" in result.output

    def test_show(self):
        self.invoke("import", self.spec_file)

        result = self.invoke("show", "petstore:2.1.0")
        assert result.exit_code == 0
        assert "Pet Store" in result.output

        missing = self.invoke("show", "custom:nothing:1.0.0")
        assert missing.exit_code == 1
        assert "not found" in missing.output

    def test_remove(self):
        self.invoke("import", self.spec_file)

        result = self.invoke("remove", "petstore", "--version", "2.1.0")
        assert result.exit_code == 0
        assert "Successfully removed custom:petstore:2.1.0" in result.output
        assert "No custom specs imported" in self.invoke("list").output

        again = self.invoke("remove", "custom:petstore:2.1.0")
        assert again.exit_code == 1
        assert "not found or already removed" in again.output

    def test_validate(self):
        result = self.invoke("validate", self.spec_file)
        assert result.exit_code == 0
        assert "Valid OpenAPI 3.0.3 specification" in result.output

        broken = self.invoke("validate", self.write_spec("{broken", "broken.json"))
        assert broken.exit_code == 1
        assert "Failed to parse JSON" in broken.output

    def test_scan(self):
        self.invoke("import", self.spec_file)
        result = self.invoke("scan", "custom:petstore:2.1.0")

        assert result.exit_code == 0
        assert "Security Scan Report" in result.output
        assert "No security issues found" in result.output

    def test_integrity(self):
        """Test detecting and repairing a missing spec file."""
        self.invoke("import", self.spec_file)
        assert "Manifest is consistent" in self.invoke("integrity").output

        (self.cache_dir / "custom-specs" / "custom" / "petstore" / "2.1.0.json").unlink()

        result = self.invoke("integrity")
        assert result.exit_code == 1
        assert "Spec file missing for" in result.output

        repaired = self.invoke("integrity", "--repair")
        assert repaired.exit_code == 0
        assert "Removed spec with missing file" in repaired.output
        assert json.loads(self.invoke("list", "-o", "json").stdout) == []

    def test_stats(self):
        self.invoke("import", self.spec_file)
        result = self.invoke("stats")

        assert result.exit_code == 0
        assert "Total specs" in result.output
        assert "Custom Spec Storage" in result.output


class TestCacheCommands:
    """Test cache maintenance commands."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        """Set up test fixtures."""
        self.runner = CliRunner()
        self.cache_dir = tmp_path / "cli-cache"

    def invoke(self, *args):
        return self.runner.invoke(cli, ["--cache-dir", str(self.cache_dir), *args])

    def test_invalidate(self):
        result = self.invoke("cache", "invalidate")

        assert result.exit_code == 0
        assert "Invalidation flag created" in result.output
        assert (self.cache_dir / ".invalidate").exists()

    def test_clear_and_stats(self):
        (self.cache_dir).mkdir(parents=True)
        (self.cache_dir / "cache.json").write_text(
            json.dumps({"primary:providers": {"value": {"data": []}, "expires": 0, "created": 0}})
        )

        stats = self.invoke("cache", "stats")
        assert stats.exit_code == 0
        assert "Keys" in stats.output

        result = self.invoke("cache", "clear")
        assert result.exit_code == 0
        assert "Cache cleared" in result.output
        assert not (self.cache_dir / "cache.json").exists()


class TestDirectoryCommands:
    """Test directory query commands."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()
        self.aggregator = MagicMock()
        self.aggregator.cache.close = AsyncMock()

    def invoke(self, tmp_path, *args):
        with patch.object(cli_context, "get_aggregator", return_value=self.aggregator):
            return self.runner.invoke(cli, ["--cache-dir", str(tmp_path), *args])

    def test_search(self, tmp_path):
        """Test search output and argument passing."""
        self.aggregator.search_apis = AsyncMock(return_value=PaginatedResults(
            results=[ApiSummary(id="stripe.com", title="Stripe", provider="stripe.com", preferred="1")],
            pagination=Pagination.compute(1, 5, 1),
        ))

        result = self.invoke(tmp_path, "search", "stripe", "--provider", "stripe.com", "--limit", "5")

        assert result.exit_code == 0, result.output
        assert "stripe.com" in result.output
        assert "Page 1 of 1" in result.output
        self.aggregator.search_apis.assert_awaited_once_with("stripe", "stripe.com", 1, 5)
        self.aggregator.cache.close.assert_awaited_once()

    def test_search_no_results(self, tmp_path):
        self.aggregator.search_apis = AsyncMock(return_value=PaginatedResults())
        result = self.invoke(tmp_path, "search", "nothing")

        assert result.exit_code == 0
        assert "No APIs found" in result.output

    def test_apis(self, tmp_path):
        self.aggregator.get_paginated_apis = AsyncMock(return_value=PaginatedResults(
            results=[ApiSummary(id="a.com", title="A")],
            pagination=Pagination.compute(2, 1, 3),
        ))
        result = self.invoke(tmp_path, "apis", "--page", "2", "--limit", "1")

        assert result.exit_code == 0
        assert "Page 2 of 3" in result.output
        self.aggregator.get_paginated_apis.assert_awaited_once_with(2, 1)

    def test_providers(self, tmp_path):
        self.aggregator.get_providers = AsyncMock(return_value={"data": ["a.com", "custom"]})
        result = self.invoke(tmp_path, "providers")

        assert result.exit_code == 0
        assert "a.com" in result.output
        assert "2 providers" in result.output

    def test_metrics_json(self, tmp_path):
        self.aggregator.get_metrics = AsyncMock(return_value=DirectoryMetrics(
            num_specs=5, num_apis=4, num_endpoints=40,
        ))
        result = self.invoke(tmp_path, "metrics", "--json")

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"numSpecs": 5, "numAPIs": 4, "numEndpoints": 40}

    def test_provider_stats(self, tmp_path):
        self.aggregator.get_provider_stats = AsyncMock(return_value=ProviderStats(
            total_apis=2, total_versions=3, latest_update="2024-01-01T00:00:00.000Z",
            oldest_api="a.com:old", newest_api="a.com:new",
        ))
        result = self.invoke(tmp_path, "provider-stats", "a.com")

        assert result.exit_code == 0
        assert "a.com:old" in result.output

    def test_source_errors_exit_non_zero(self, tmp_path):
        """Test that directory errors are rendered and exit with status 1."""
        self.aggregator.get_providers = AsyncMock(side_effect=NetworkError("connection refused"))
        result = self.invoke(tmp_path, "providers")

        assert result.exit_code == 1
        assert "Error: connection refused" in result.output
        self.aggregator.cache.close.assert_awaited_once()
