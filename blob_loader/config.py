"""Test plan loading and validation.

Supports two configuration sources:
1. A JSON plan file describing the scenarios
2. Environment variables supplying plan-level defaults

Document values always win over the environment. Environment variables:
    HOKU_PRIVATE_KEY          default signing key
    HOKU_FUNDER_PRIVATE_KEY   default funding key
    HOKU_NETWORK              default network (mainnet|testnet|devnet|localnet)
    HOKU_ENDPOINT             gateway URL override

Example plan:
    {
      "network": "devnet",
      "funderPrivateKey": "...",
      "scenarios": [
        {
          "requestFunds": 10,
          "buyCredit": 1,
          "broadcastMode": "sync",
          "upload": {"prefix": "foo", "blobCount": 100, "blobSizeMb": 0.5},
          "download": "0-50",
          "delete": true
        }
      ]
    }

Validation is total: every scenario is checked before anything runs, and the
first problem found raises ConfigError.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

from blob_loader.errors import ConfigError
from blob_loader.models import (
    DEFAULT_BLOB_COUNT,
    DEFAULT_BLOB_SIZE_MB,
    DEFAULT_CONCURRENCY,
    DEFAULT_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PREFIX,
    BroadcastMode,
    DownloadSpec,
    Network,
    ScenarioSpec,
    Target,
    TestPlan,
    UploadSpec,
)

ENV_PRIVATE_KEY = "HOKU_PRIVATE_KEY"
ENV_FUNDER_PRIVATE_KEY = "HOKU_FUNDER_PRIVATE_KEY"
ENV_NETWORK = "HOKU_NETWORK"
ENV_ENDPOINT = "HOKU_ENDPOINT"

# Networks that have no local default gateway
REMOTE_NETWORKS = {Network.TESTNET, Network.MAINNET}

_RANGE_PATTERN = re.compile(r"^\s*(\d+)\s*-\s*(\d*)\s*$")


def load_from_json(config_path: str) -> dict[str, Any]:
    """Read a raw plan document from a JSON file.

    Raises:
        ConfigError: If the file doesn't exist or contains invalid JSON.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")

    return data


def env_defaults(env: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Collect plan-level defaults from environment variables."""
    if env is None:
        env = os.environ

    mapping = {
        "privateKey": ENV_PRIVATE_KEY,
        "funderPrivateKey": ENV_FUNDER_PRIVATE_KEY,
        "network": ENV_NETWORK,
        "endpoint": ENV_ENDPOINT,
    }
    return {field: env[var] for field, var in mapping.items() if env.get(var)}


def _enum(enum_cls, value: Any, where: str, field: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigError(
            f"{where}: unknown {field} '{value}' (expected one of: {choices})"
        ) from None


def _positive_int(value: Any, where: str, field: str, allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{where}: '{field}' must be an integer, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{where}: '{field}' must be positive, got {value}")
    return value


def _positive_number(value: Any, where: str, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}: '{field}' must be a number, got {value!r}")
    if value <= 0:
        raise ConfigError(f"{where}: '{field}' must be positive, got {value}")
    return float(value)


def _optional_str(value: Any, where: str, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{where}: '{field}' must be a non-empty string")
    return value.strip()


def parse_download(value: Any, where: str) -> Optional[DownloadSpec]:
    """Parse the ``download`` field.

    Accepts a boolean, a ``"start-end"`` string, a two-element list, or a
    ``{"start": a, "end": b}`` object. Ranges are half-open ``[start, end)``;
    an empty end in the string form means "to the last key".
    """
    if value is None or value is False:
        return None
    if value is True:
        return DownloadSpec()

    if isinstance(value, str):
        match = _RANGE_PATTERN.match(value)
        if not match:
            raise ConfigError(f"{where}: malformed download range '{value}'")
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) else None
    elif isinstance(value, list):
        if len(value) != 2:
            raise ConfigError(f"{where}: download range list must be [start, end]")
        start, end = value
    elif isinstance(value, dict):
        unknown = set(value) - {"start", "end"}
        if unknown or "start" not in value:
            raise ConfigError(f"{where}: download range object needs 'start' and optional 'end'")
        start, end = value["start"], value.get("end")
    else:
        raise ConfigError(f"{where}: unsupported download value {value!r}")

    start = _positive_int(start, where, "download.start", allow_zero=True)
    if end is not None:
        end = _positive_int(end, where, "download.end")
        if end <= start:
            raise ConfigError(f"{where}: empty download range [{start}, {end})")

    return DownloadSpec(start=start, end=end)


def parse_upload(value: Any, where: str) -> UploadSpec:
    if value is None:
        value = {}
    if not isinstance(value, dict):
        raise ConfigError(f"{where}: 'upload' must be an object")

    size = value.get("blobSizeMb", value.get("blobSize", DEFAULT_BLOB_SIZE_MB))
    prefix = value.get("prefix", DEFAULT_PREFIX)
    if not isinstance(prefix, str) or not prefix.strip("/"):
        raise ConfigError(f"{where}: 'upload.prefix' must be a non-empty string")

    overwrite = value.get("overwrite", True)
    if not isinstance(overwrite, bool):
        raise ConfigError(f"{where}: 'upload.overwrite' must be a boolean")

    return UploadSpec(
        bucket=_optional_str(value.get("bucket"), where, "upload.bucket"),
        prefix=prefix,
        blob_count=_positive_int(
            value.get("blobCount", DEFAULT_BLOB_COUNT), where, "upload.blobCount"
        ),
        blob_size_mb=_positive_number(size, where, "upload.blobSizeMb"),
        overwrite=overwrite,
    )


def parse_scenario(
    index: int,
    data: Any,
    defaults: Mapping[str, Any],
) -> ScenarioSpec:
    """Build one ScenarioSpec, resolving key fallbacks against plan defaults."""
    where = f"scenario {index}"
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: must be an object")

    private_key = _optional_str(data.get("privateKey"), where, "privateKey") or defaults.get("privateKey")
    if not private_key:
        raise ConfigError(f"{where}: no signing key (set 'privateKey' or {ENV_PRIVATE_KEY})")

    target = _enum(Target, data.get("target", Target.SDK.value), where, "target")

    request_funds = data.get("requestFunds")
    if request_funds is not None:
        request_funds = _positive_int(request_funds, where, "requestFunds")

    buy_credit = data.get("buyCredit", data.get("buyCredits"))
    if buy_credit is not None:
        buy_credit = _positive_int(buy_credit, where, "buyCredit", allow_zero=True)

    funder_key = (
        _optional_str(data.get("funderPrivateKey"), where, "funderPrivateKey")
        or defaults.get("funderPrivateKey")
    )
    if request_funds and not funder_key:
        raise ConfigError(
            f"{where}: 'requestFunds' needs a funding key "
            f"(set 'funderPrivateKey' or {ENV_FUNDER_PRIVATE_KEY})"
        )

    if target == Target.S3 and (request_funds or buy_credit):
        raise ConfigError(f"{where}: the s3 target does not support funding or credits")

    delete = data.get("delete", False)
    if not isinstance(delete, bool):
        raise ConfigError(f"{where}: 'delete' must be a boolean")

    name = data.get("name", "")
    if not isinstance(name, str):
        raise ConfigError(f"{where}: 'name' must be a string")

    return ScenarioSpec(
        index=index,
        name=name,
        private_key=private_key,
        funder_private_key=funder_key,
        request_funds=request_funds,
        buy_credit=buy_credit,
        upload=parse_upload(data.get("upload"), where),
        download=parse_download(data.get("download"), where),
        delete=delete,
        broadcast_mode=_enum(
            BroadcastMode,
            data.get("broadcastMode", BroadcastMode.COMMIT.value),
            where,
            "broadcastMode",
        ),
        target=target,
        concurrency=_positive_int(
            data.get("concurrency", DEFAULT_CONCURRENCY), where, "concurrency"
        ),
        poll_attempts=_positive_int(
            data.get("pollAttempts", DEFAULT_POLL_ATTEMPTS), where, "pollAttempts"
        ),
        poll_interval=_positive_number(
            data.get("pollIntervalSeconds", DEFAULT_POLL_INTERVAL),
            where,
            "pollIntervalSeconds",
        ),
    )


def parse_plan(
    data: Mapping[str, Any],
    env: Optional[Mapping[str, str]] = None,
) -> TestPlan:
    """Validate a raw plan document and build a TestPlan.

    Args:
        data: Decoded plan document
        env: Environment to take defaults from (defaults to os.environ)

    Raises:
        ConfigError: On the first validation problem found.
    """
    defaults: dict[str, Any] = env_defaults(env)
    for field in ("privateKey", "funderPrivateKey", "network", "endpoint"):
        value = _optional_str(data.get(field), "plan", field)
        if value:
            defaults[field] = value

    network = _enum(Network, defaults.get("network", Network.DEVNET.value), "plan", "network")

    max_error_rate = data.get("maxErrorRate", 0.0)
    if isinstance(max_error_rate, bool) or not isinstance(max_error_rate, (int, float)) \
            or not 0.0 <= max_error_rate <= 1.0:
        raise ConfigError(f"plan: 'maxErrorRate' must be between 0 and 1, got {max_error_rate!r}")

    region = data.get("region", "us-east-1")
    if not isinstance(region, str) or not region:
        raise ConfigError("plan: 'region' must be a non-empty string")

    raw_scenarios = data.get("scenarios", data.get("tests"))
    if not isinstance(raw_scenarios, list) or not raw_scenarios:
        raise ConfigError("plan: at least one scenario is required in 'scenarios'")

    scenarios = tuple(
        parse_scenario(index, raw, defaults) for index, raw in enumerate(raw_scenarios)
    )

    endpoint = defaults.get("endpoint")
    if network in REMOTE_NETWORKS and not endpoint:
        for scenario in scenarios:
            if scenario.target == Target.SDK:
                raise ConfigError(
                    f"scenario {scenario.index}: network '{network.value}' needs an "
                    f"'endpoint' (or {ENV_ENDPOINT}) for the sdk target"
                )

    return TestPlan(
        scenarios=scenarios,
        network=network,
        private_key=defaults.get("privateKey"),
        funder_private_key=defaults.get("funderPrivateKey"),
        endpoint=endpoint,
        region=region,
        max_error_rate=float(max_error_rate),
    )


def load_plan(config_path: str, env: Optional[Mapping[str, str]] = None) -> TestPlan:
    """Load and validate a plan file.

    Raises:
        ConfigError: If the file is missing, malformed, or invalid.
    """
    return parse_plan(load_from_json(config_path), env=env)
