"""Tests for pglog_sink.config module."""

import json
import logging
import os

import pytest

from pglog_sink.config import ConfigurationError, SinkConfig, load_config, parse_level


class TestValidation:
    """SinkConfig.validate() fails fast on bad options."""

    def test_defaults(self):
        config = SinkConfig(connection_string="postgresql://localhost/app").validate()

        assert config.table_name == "Logs"
        assert config.batch_size == 100
        assert config.store_timestamp_in_utc is False
        assert config.level == logging.NOTSET
        assert config.level_switch is None

    def test_missing_connection_string(self):
        with pytest.raises(ConfigurationError, match="connection_string"):
            SinkConfig().validate()

    @pytest.mark.parametrize("batch_size", [0, -1, 1001])
    def test_batch_size_out_of_range(self, batch_size):
        config = SinkConfig(connection_string="dsn", batch_size=batch_size)

        with pytest.raises(ConfigurationError, match="between 1 and 1000"):
            config.validate()

    @pytest.mark.parametrize("batch_size", [1, 1000])
    def test_batch_size_bounds_inclusive(self, batch_size):
        SinkConfig(connection_string="dsn", batch_size=batch_size).validate()

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            SinkConfig().validate()

    def test_unknown_level(self):
        with pytest.raises(ConfigurationError, match="Unknown log level"):
            SinkConfig(connection_string="dsn", minimum_level="LOUD").validate()

    def test_non_positive_flush_interval(self):
        with pytest.raises(ConfigurationError, match="flush_interval_ms"):
            SinkConfig(connection_string="dsn", flush_interval_ms=0).validate()

    def test_non_positive_queue_size(self):
        with pytest.raises(ConfigurationError, match="max_queue_size"):
            SinkConfig(connection_string="dsn", max_queue_size=0).validate()

    def test_non_integer_option_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="flush_interval_ms"):
            SinkConfig(connection_string="dsn", flush_interval_ms="2000").validate()

    def test_non_bool_utc_flag_rejected(self):
        with pytest.raises(ConfigurationError, match="store_timestamp_in_utc"):
            SinkConfig(connection_string="dsn", store_timestamp_in_utc="false").validate()

    def test_level_switch_must_be_a_switch(self):
        with pytest.raises(ConfigurationError, match="level_switch"):
            SinkConfig(connection_string="dsn", level_switch="DEBUG").validate()


class TestFromDict:
    """Values from YAML/JSON documents are converted before validation."""

    def test_quoted_values_are_converted(self):
        config = SinkConfig.from_dict({
            "connection_string": "dsn",
            "store_timestamp_in_utc": "false",
            "batch_size": "50",
            "flush_interval_ms": "2000",
            "max_queue_size": "",
        }).validate()

        assert config.store_timestamp_in_utc is False
        assert config.batch_size == 50
        assert config.flush_interval_ms == 2000
        assert config.max_queue_size is None

    def test_quoted_true(self):
        config = SinkConfig.from_dict({"connection_string": "dsn", "store_timestamp_in_utc": "Yes"})

        assert config.store_timestamp_in_utc is True

    def test_unconvertible_number(self):
        with pytest.raises(ConfigurationError, match="batch_size"):
            SinkConfig.from_dict({"connection_string": "dsn", "batch_size": "many"})

    def test_yaml_quoted_flag(self, tmp_path):
        path = tmp_path / "pglog.yaml"
        path.write_text(
            "sink:\n"
            "  connection_string: dsn\n"
            "  store_timestamp_in_utc: \"false\"\n"
            "  shutdown_timeout_ms: \"500\"\n"
        )

        config = load_config(str(path)).validate()

        assert config.store_timestamp_in_utc is False
        assert config.shutdown_timeout_ms == 500


class TestParseLevel:

    def test_names_and_numbers(self):
        assert parse_level("info") == logging.INFO
        assert parse_level("WARNING") == logging.WARNING
        assert parse_level(40) == logging.ERROR
        assert parse_level("15") == 15

    def test_aliases(self):
        assert parse_level(None) == logging.NOTSET
        assert parse_level("minimum") == logging.NOTSET
        assert parse_level("verbose") == 5


class TestFromEnv:
    """SinkConfig.from_env() reads PGLOG_* variables."""

    def test_reads_variables(self):
        os.environ["PGLOG_CONNECTION_STRING"] = "postgresql://db/app"
        os.environ["PGLOG_TABLE_NAME"] = "AppLogs"
        os.environ["PGLOG_BATCH_SIZE"] = "25"
        os.environ["PGLOG_STORE_TIMESTAMP_IN_UTC"] = "true"
        os.environ["PGLOG_MINIMUM_LEVEL"] = "WARNING"
        os.environ["PGLOG_MAX_QUEUE_SIZE"] = "5000"

        config = SinkConfig.from_env().validate()

        assert config.connection_string == "postgresql://db/app"
        assert config.table_name == "AppLogs"
        assert config.batch_size == 25
        assert config.store_timestamp_in_utc is True
        assert config.level == logging.WARNING
        assert config.max_queue_size == 5000

    def test_invalid_number(self):
        os.environ["PGLOG_BATCH_SIZE"] = "lots"

        with pytest.raises(ConfigurationError):
            SinkConfig.from_env()


class TestLoadConfig:
    """load_config() file discovery."""

    def test_explicit_yaml_path(self, tmp_path):
        path = tmp_path / "pglog.yaml"
        path.write_text(
            "sink:\n"
            "  connection_string: postgresql://localhost/app\n"
            "  table_name: Events\n"
            "  batch_size: 10\n"
            "  unknown_option: ignored\n"
        )

        config = load_config(str(path))

        assert config.connection_string == "postgresql://localhost/app"
        assert config.table_name == "Events"
        assert config.batch_size == 10

    def test_json_path(self, tmp_path):
        path = tmp_path / "pglog.json"
        path.write_text(json.dumps({"sink": {"connection_string": "dsn", "batch_size": 7}}))

        assert load_config(str(path)).batch_size == 7

    def test_env_var_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("sink:\n  connection_string: from-env-file\n")
        os.environ["PGLOG_CONFIG"] = str(path)

        assert load_config().connection_string == "from-env-file"

    def test_walks_up_directories(self, tmp_path, monkeypatch):
        (tmp_path / "pglog.yaml").write_text("sink:\n  table_name: Parent\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        assert load_config().table_name == "Parent"

    def test_falls_back_to_env(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        os.environ.pop("PGLOG_CONFIG", None)
        os.environ["PGLOG_CONNECTION_STRING"] = "env-dsn"

        # tmp_path may sit under a directory holding a pglog.yaml; guard on it
        if any((p / "pglog.yaml").exists() for p in [tmp_path, *tmp_path.parents]):
            pytest.skip("pglog.yaml present above tmp_path")

        assert load_config().connection_string == "env-dsn"

    def test_sink_section_must_be_mapping(self, tmp_path):
        path = tmp_path / "pglog.yaml"
        path.write_text("sink: nope\n")

        with pytest.raises(ConfigurationError):
            load_config(str(path))
