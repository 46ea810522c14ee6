"""Tests for the ndjson-cache command line."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from ndjson_cache import __version__
from ndjson_cache.cli import app, build_cache, load_records

runner = CliRunner()

BUCKET = "cli-bucket"


@pytest.fixture
def bucket_env(monkeypatch):
    monkeypatch.setenv("NDJSON_CACHE_BUCKET", BUCKET)


@pytest.fixture(autouse=True)
def mock_setup_logging():
    """Keep console handlers off the runner's captured streams."""
    with patch("ndjson_cache.cli.setup_logging") as mock:
        yield mock


class TestBuildCache:
    """Tests for build_cache."""

    def test_options_become_client_config(self, fake_s3):
        cache = build_cache("b", "us-east-2", "http://localhost:9000")
        assert cache.get_options()["config"] == {
            "region_name": "us-east-2",
            "endpoint_url": "http://localhost:9000",
        }

    def test_unset_options_keep_defaults(self, fake_s3, bucket_env):
        cache = build_cache(None, None, None)
        assert cache.bucket == BUCKET
        assert cache.get_options()["config"] == {"region_name": "eu-west-1"}


class TestLoadRecords:
    """Tests for load_records."""

    def test_json_array(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text('[{"a": 1}, {"a": 2}]')
        assert load_records(path) == [{"a": 1}, {"a": 2}]

    def test_ndjson_file(self, tmp_path):
        path = tmp_path / "records.ndjson"
        path.write_text('{"a": 1}\n\n{"a": 2}\n')
        assert load_records(path) == [{"a": 1}, {"a": 2}]

    def test_jsonl_suffix(self, tmp_path):
        path = tmp_path / "records.JSONL"
        path.write_text("1\n2\n")
        assert load_records(path) == [1, 2]


class TestCommands:
    """Tests for CLI commands."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_commands_attach_console_logging(self, fake_s3, bucket_env, mock_setup_logging):
        """The CLI, not the cache, installs the console handler."""
        result = runner.invoke(app, ["options"])

        assert result.exit_code == 0
        mock_setup_logging.assert_called_once_with()

    def test_put_then_get(self, fake_s3, bucket_env, tmp_path):
        source = tmp_path / "records.json"
        source.write_text(json.dumps([{"foo": "bar"}, {"foo": "baz"}]))

        result = runner.invoke(app, ["put", "key.ndjson", str(source)])
        assert result.exit_code == 0
        assert "Stored 2 records" in result.output
        assert fake_s3.objects[(BUCKET, "key.ndjson")] == b'{"foo":"bar"}\n{"foo":"baz"}\n'

        result = runner.invoke(app, ["get", "key.ndjson"])
        assert result.exit_code == 0
        assert '{"foo":"bar"}\n{"foo":"baz"}\n' in result.output

    def test_get_to_file(self, fake_s3, tmp_path):
        fake_s3.objects[("other", "k")] = b"1\n2\n3\n"
        output = tmp_path / "out" / "k.ndjson"

        result = runner.invoke(app, ["get", "k", "--bucket", "other", "--output", str(output)])

        assert result.exit_code == 0
        assert output.read_text() == "1\n2\n3\n"

    def test_put_invalid_json(self, fake_s3, bucket_env, tmp_path):
        source = tmp_path / "broken.json"
        source.write_text("[{")

        result = runner.invoke(app, ["put", "k", str(source)])

        assert result.exit_code == 1
        assert "Cannot read" in result.output

    def test_get_malformed_object(self, fake_s3, bucket_env):
        fake_s3.objects[(BUCKET, "k")] = b"{nope\n"

        result = runner.invoke(app, ["get", "k"])

        assert result.exit_code == 1
        assert "Malformed NDJSON record 0" in result.output

    def test_get_missing_key(self, fake_s3, bucket_env):
        result = runner.invoke(app, ["get", "missing"])

        assert result.exit_code == 1
        assert "NoSuchKey" in result.output

    def test_no_bucket(self, fake_s3):
        result = runner.invoke(app, ["options"])

        assert result.exit_code == 1
        assert "No bucket specified" in result.output

    def test_exists_and_flush(self, fake_s3, bucket_env):
        fake_s3.objects[(BUCKET, "k")] = b"1\n"

        result = runner.invoke(app, ["exists", "k"])
        assert result.exit_code == 0
        assert "exists" in result.output

        result = runner.invoke(app, ["flush", "k"])
        assert result.exit_code == 0
        assert (BUCKET, "k") not in fake_s3.objects

        result = runner.invoke(app, ["exists", "k"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_options_table(self, fake_s3, bucket_env):
        result = runner.invoke(app, ["options", "--region", "us-east-2"])

        assert result.exit_code == 0
        assert BUCKET in result.output
        assert "us-east-2" in result.output
        assert "ERROR" in result.output
