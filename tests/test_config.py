"""Tests for configuration loading module."""

import json
from pathlib import Path

import pytest

from blob_loader.config import (
    ConfigError,
    env_defaults,
    load_from_json,
    load_plan,
    parse_download,
    parse_plan,
)
from blob_loader.models import BroadcastMode, DownloadSpec, Network, Target

KEY = "0x" + "ab" * 32


def plan(*scenarios, **fields):
    data = {"privateKey": KEY, "scenarios": list(scenarios) or [{}]}
    data.update(fields)
    return data


class TestLoadFromJson:
    """Tests for load_from_json function."""

    def test_valid_plan_file(self, tmp_path: Path):
        """Load a valid plan file."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps(plan({"upload": {"blobCount": 3}})))

        data = load_from_json(str(config_file))

        assert data["scenarios"][0]["upload"]["blobCount"] == 3

    def test_missing_file_raises_error(self, tmp_path: Path):
        """Raise ConfigError when config file doesn't exist."""
        config_file = tmp_path / "nonexistent.json"

        with pytest.raises(ConfigError, match="Config file not found"):
            load_from_json(str(config_file))

    def test_malformed_json_raises_error(self, tmp_path: Path):
        """Raise ConfigError when config file contains invalid JSON."""
        config_file = tmp_path / "config.json"
        config_file.write_text("{ invalid json }")

        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_from_json(str(config_file))

    def test_non_object_raises_error(self, tmp_path: Path):
        """A top-level array is not a plan."""
        config_file = tmp_path / "config.json"
        config_file.write_text("[]")

        with pytest.raises(ConfigError, match="JSON object"):
            load_from_json(str(config_file))

    def test_load_plan_reads_and_validates(self, tmp_path: Path):
        """load_plan should return a validated TestPlan."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps(plan({"name": "smoke"})))

        result = load_plan(str(config_file), env={})

        assert result.scenarios[0].name == "smoke"


class TestEnvDefaults:
    """Tests for environment variable defaults."""

    def test_reads_known_variables(self):
        """Known variables map onto plan fields."""
        env = {
            "HOKU_PRIVATE_KEY": "k",
            "HOKU_FUNDER_PRIVATE_KEY": "f",
            "HOKU_NETWORK": "testnet",
            "HOKU_ENDPOINT": "http://gw",
            "UNRELATED": "x",
        }
        assert env_defaults(env) == {
            "privateKey": "k",
            "funderPrivateKey": "f",
            "network": "testnet",
            "endpoint": "http://gw",
        }

    def test_empty_values_are_ignored(self):
        """Empty variables should not override anything."""
        assert env_defaults({"HOKU_PRIVATE_KEY": ""}) == {}

    def test_env_key_used_when_document_has_none(self):
        """The environment supplies the signing key when the plan doesn't."""
        result = parse_plan({"scenarios": [{}]}, env={"HOKU_PRIVATE_KEY": "env-key"})
        assert result.scenarios[0].private_key == "env-key"

    def test_document_wins_over_env(self):
        """Plan-level values take priority over environment variables."""
        result = parse_plan(plan(network="localnet"), env={"HOKU_NETWORK": "devnet"})
        assert result.network == Network.LOCALNET


class TestParsePlanDefaults:
    """Tests for defaults applied to a minimal plan."""

    def test_minimal_scenario(self):
        """An empty scenario object gets every default."""
        result = parse_plan(plan(), env={})
        scenario = result.scenarios[0]

        assert result.network == Network.DEVNET
        assert result.max_error_rate == 0.0
        assert scenario.index == 0
        assert scenario.target == Target.SDK
        assert scenario.broadcast_mode == BroadcastMode.COMMIT
        assert scenario.upload.prefix == "foo"
        assert scenario.upload.blob_count == 100
        assert scenario.upload.blob_size_mb == 1.0
        assert scenario.upload.overwrite is True
        assert scenario.upload.bucket is None
        assert scenario.download is None
        assert scenario.delete is False
        assert scenario.concurrency == 4

    def test_scenarios_keep_their_order(self):
        """Scenario indices follow document order."""
        result = parse_plan(plan({"name": "a"}, {"name": "b"}, {"name": "c"}), env={})
        assert [(s.index, s.name) for s in result.scenarios] == [(0, "a"), (1, "b"), (2, "c")]

    def test_tests_alias(self):
        """'tests' is accepted in place of 'scenarios'."""
        result = parse_plan({"privateKey": KEY, "tests": [{}, {}]}, env={})
        assert len(result.scenarios) == 2

    def test_blob_size_alias(self):
        """'blobSize' is accepted in place of 'blobSizeMb'."""
        result = parse_plan(plan({"upload": {"blobSize": 0.5}}), env={})
        assert result.scenarios[0].upload.blob_size_mb == 0.5

    def test_buy_credits_alias(self):
        """'buyCredits' is accepted in place of 'buyCredit'."""
        result = parse_plan(plan({"buyCredits": 2}), env={})
        assert result.scenarios[0].buy_credit == 2

    def test_enums_are_case_insensitive(self):
        """Broadcast mode and target accept any case."""
        result = parse_plan(plan({"broadcastMode": "SYNC", "target": "Memory"}), env={})
        assert result.scenarios[0].broadcast_mode == BroadcastMode.SYNC
        assert result.scenarios[0].target == Target.MEMORY

    def test_scenario_key_overrides_plan_key(self):
        """A scenario's own key wins over the plan default."""
        result = parse_plan(plan({"privateKey": "mine"}, {}), env={})
        assert result.scenarios[0].private_key == "mine"
        assert result.scenarios[1].private_key == KEY


class TestParsePlanValidation:
    """Tests for validation errors."""

    def test_no_signing_key(self):
        """A scenario without any signing key is rejected."""
        with pytest.raises(ConfigError, match="no signing key"):
            parse_plan({"scenarios": [{}]}, env={})

    def test_empty_scenarios(self):
        """A plan must have at least one scenario."""
        with pytest.raises(ConfigError, match="at least one scenario"):
            parse_plan({"privateKey": KEY, "scenarios": []}, env={})

    def test_missing_scenarios(self):
        """A plan without a scenario list is rejected."""
        with pytest.raises(ConfigError, match="at least one scenario"):
            parse_plan({"privateKey": KEY}, env={})

    def test_request_funds_without_funder(self):
        """requestFunds needs a funding key."""
        with pytest.raises(ConfigError, match="funding key"):
            parse_plan(plan({"requestFunds": 10}), env={})

    def test_request_funds_with_plan_funder(self):
        """The plan-level funding key satisfies requestFunds."""
        result = parse_plan(plan({"requestFunds": 10}, funderPrivateKey="funder"), env={})
        assert result.scenarios[0].funder_private_key == "funder"

    @pytest.mark.parametrize("field", ["requestFunds", "buyCredit"])
    def test_s3_target_rejects_funding_and_credit(self, field):
        """The s3 target has no accounts or credits."""
        with pytest.raises(ConfigError, match="s3 target"):
            parse_plan(plan({"target": "s3", field: 1}, funderPrivateKey="f"), env={})

    def test_remote_network_needs_endpoint(self):
        """testnet/mainnet have no default gateway for the sdk target."""
        with pytest.raises(ConfigError, match="endpoint"):
            parse_plan(plan(network="testnet"), env={})

    def test_remote_network_with_endpoint(self):
        """An endpoint makes a remote network usable."""
        result = parse_plan(plan(network="mainnet", endpoint="https://gw"), env={})
        assert result.endpoint == "https://gw"

    @pytest.mark.parametrize("upload", [
        {"blobCount": 0},
        {"blobCount": -1},
        {"blobCount": "10"},
        {"blobSizeMb": 0},
        {"blobSizeMb": -0.5},
        {"prefix": ""},
        {"prefix": "/"},
        {"overwrite": "yes"},
    ])
    def test_invalid_upload_fields(self, upload):
        """Invalid upload values are rejected."""
        with pytest.raises(ConfigError):
            parse_plan(plan({"upload": upload}), env={})

    @pytest.mark.parametrize("field,value", [
        ("broadcastMode", "eventually"),
        ("target", "ftp"),
        ("concurrency", 0),
        ("delete", "true"),
        ("requestFunds", 0),
    ])
    def test_invalid_scenario_fields(self, field, value):
        """Invalid scenario values are rejected."""
        with pytest.raises(ConfigError):
            parse_plan(plan({field: value}, funderPrivateKey="f"), env={})

    @pytest.mark.parametrize("rate", [-0.1, 1.5, "0.1", True])
    def test_invalid_max_error_rate(self, rate):
        """maxErrorRate must be a number in [0, 1]."""
        with pytest.raises(ConfigError, match="maxErrorRate"):
            parse_plan(plan(maxErrorRate=rate), env={})

    def test_unknown_network(self):
        """Unknown networks are rejected."""
        with pytest.raises(ConfigError, match="network"):
            parse_plan(plan(network="moon"), env={})

    def test_error_names_the_scenario(self):
        """Errors point at the offending scenario."""
        with pytest.raises(ConfigError, match="scenario 1"):
            parse_plan(plan({}, {"upload": {"blobCount": 0}}), env={})


class TestParseDownload:
    """Tests for the download field forms."""

    def test_absent_or_false(self):
        """No download phase."""
        assert parse_download(None, "s") is None
        assert parse_download(False, "s") is None

    def test_true_means_everything(self):
        """true downloads every key."""
        assert parse_download(True, "s") == DownloadSpec()

    def test_string_range(self):
        """'a-b' is a half-open range."""
        assert parse_download("2-5", "s") == DownloadSpec(start=2, end=5)

    def test_string_open_end(self):
        """'a-' runs to the last key."""
        assert parse_download("3-", "s") == DownloadSpec(start=3, end=None)

    def test_list_range(self):
        """[a, b] is accepted."""
        assert parse_download([0, 4], "s") == DownloadSpec(start=0, end=4)

    def test_object_range(self):
        """{"start", "end"} is accepted."""
        assert parse_download({"start": 1, "end": 2}, "s") == DownloadSpec(start=1, end=2)
        assert parse_download({"start": 1}, "s") == DownloadSpec(start=1)

    @pytest.mark.parametrize("value", ["abc", "5", "-3", "1-2-3", [1], [1, 2, 3], {"end": 2}, 7])
    def test_malformed(self, value):
        """Malformed ranges are rejected."""
        with pytest.raises(ConfigError):
            parse_download(value, "s")

    @pytest.mark.parametrize("value", ["5-5", "5-2", [3, 1]])
    def test_empty_range(self, value):
        """end <= start is rejected."""
        with pytest.raises(ConfigError):
            parse_download(value, "s")
