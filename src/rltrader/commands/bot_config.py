"""Configuration loading for the trading bot.

Example config file (bot.yaml):

    watchlist:
      - "BTC-USD"
      - "ETH-USD"
    strategy:
      alpha: 0.3
      gamma: 0.7
      epsilon: 0.2
      stop_loss_percentage: 1.0
      take_profit_percentage: 2.0
      risk_per_trade: 2.0
      max_positions: 3
      timeframe: "15m"
      seed: null  # Fix for reproducible exploration
    engine_scope: "shared"  # or "per_symbol"
    data_source: "yahoo"  # yahoo, csv, memory
    source_params:
      timeout: 30
    storage:
      root: null  # Defaults to $RLTRADER_HOME or ~/.rltrader
    paper:
      initial_balance: 1000.0
    live:
      interval_seconds: 900
      candle_count: 50
      max_allocation_usd: 10.0
      allocation_fraction: 0.005
    training:
      days: 30
    logging:
      level: "INFO"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from rltrader.exceptions import ConfigError
from rltrader.types import BotConfig, LiveSettings, StrategySettings, Symbol

# Valid log levels
VALID_LOG_LEVELS = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

VALID_ENGINE_SCOPES = frozenset(["shared", "per_symbol"])

VALID_DATA_SOURCES = frozenset(["yahoo", "csv", "memory"])


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    """Return an optional mapping section, defaulting to empty."""
    section = raw_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _positive_number(section: dict[str, Any], name: str, key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{name}.{key}' must be a number")
    if value <= 0:
        raise ConfigError(f"'{name}.{key}' must be positive")
    return float(value)


def _parse_strategy(raw_strategy: dict[str, Any]) -> StrategySettings:
    known = set(StrategySettings.model_fields)
    unknown = set(raw_strategy) - known
    if unknown:
        raise ConfigError(
            f"Unknown strategy parameters: {sorted(unknown)}. Valid options: {sorted(known)}"
        )

    for key in ("alpha", "gamma", "epsilon"):
        if key in raw_strategy:
            value = raw_strategy[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"'strategy.{key}' must be a number")
            if not 0 <= value <= 1:
                raise ConfigError(f"'strategy.{key}' must be between 0 and 1")

    for key in ("stop_loss_percentage", "take_profit_percentage", "risk_per_trade"):
        if key in raw_strategy:
            _positive_number(raw_strategy, "strategy", key, 1.0)

    max_positions = raw_strategy.get("max_positions", 3)
    if isinstance(max_positions, bool) or not isinstance(max_positions, int) or max_positions <= 0:
        raise ConfigError("'strategy.max_positions' must be a positive integer")

    seed = raw_strategy.get("seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise ConfigError("'strategy.seed' must be an integer or null")

    try:
        return StrategySettings(**raw_strategy)
    except ValidationError as e:
        raise ConfigError(f"Invalid strategy settings: {e}") from e


def _parse_live(raw_live: dict[str, Any]) -> LiveSettings:
    candle_count = raw_live.get("candle_count", 50)
    if isinstance(candle_count, bool) or not isinstance(candle_count, int) or candle_count < 20:
        raise ConfigError("'live.candle_count' must be an integer of at least 20")

    allocation_fraction = _positive_number(raw_live, "live", "allocation_fraction", 0.005)
    if allocation_fraction > 1:
        raise ConfigError("'live.allocation_fraction' must not exceed 1")

    return LiveSettings(
        interval_seconds=_positive_number(raw_live, "live", "interval_seconds", 900.0),
        candle_count=candle_count,
        max_allocation_usd=_positive_number(raw_live, "live", "max_allocation_usd", 10.0),
        allocation_fraction=allocation_fraction,
    )


def load_bot_config(config_path: str | Path) -> BotConfig:
    """Parse and validate a bot configuration file.

    :param config_path: Path to YAML configuration file.
    :returns: Validated BotConfig object.
    :raises ConfigError: If file cannot be read or config is invalid.
    """
    config_path = Path(config_path)

    # Read and parse YAML
    try:
        with open(config_path) as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a YAML mapping")

    # Parse watchlist
    if "watchlist" not in raw_config:
        raise ConfigError("Missing required field: watchlist")
    raw_watchlist = raw_config["watchlist"]
    if not isinstance(raw_watchlist, list) or len(raw_watchlist) == 0:
        raise ConfigError("'watchlist' must be a non-empty list")
    if not all(isinstance(s, str) and s for s in raw_watchlist):
        raise ConfigError("'watchlist' entries must be non-empty strings")
    if len(set(raw_watchlist)) != len(raw_watchlist):
        raise ConfigError("'watchlist' must not contain duplicates")
    watchlist = [Symbol(s) for s in raw_watchlist]

    strategy = _parse_strategy(_section(raw_config, "strategy"))

    engine_scope = raw_config.get("engine_scope", "shared")
    if engine_scope not in VALID_ENGINE_SCOPES:
        raise ConfigError(
            f"Invalid engine_scope '{engine_scope}'. "
            f"Valid options: {sorted(VALID_ENGINE_SCOPES)}"
        )

    # Parse data source
    data_source = raw_config.get("data_source", "yahoo")
    if not isinstance(data_source, str) or data_source.lower() not in VALID_DATA_SOURCES:
        raise ConfigError(
            f"Invalid data_source '{data_source}'. "
            f"Valid options: {sorted(VALID_DATA_SOURCES)}"
        )
    source_params = _section(raw_config, "source_params")

    # Parse storage (optional)
    storage_root = _section(raw_config, "storage").get("root")
    if storage_root is not None and not isinstance(storage_root, str):
        raise ConfigError("'storage.root' must be a string")
    if storage_root is not None:
        storage_root = str(Path(storage_root).expanduser())

    initial_balance = _positive_number(
        _section(raw_config, "paper"), "paper", "initial_balance", 1000.0
    )

    live = _parse_live(_section(raw_config, "live"))

    training_days = _section(raw_config, "training").get("days", 30)
    if isinstance(training_days, bool) or not isinstance(training_days, int) or training_days <= 0:
        raise ConfigError("'training.days' must be a positive integer")

    # Parse logging (optional)
    log_level = _section(raw_config, "logging").get("level", "INFO")
    if not isinstance(log_level, str) or log_level.upper() not in VALID_LOG_LEVELS:
        raise ConfigError(
            f"Invalid log level '{log_level}'. "
            f"Valid options: {sorted(VALID_LOG_LEVELS)}"
        )

    return BotConfig(
        watchlist=watchlist,
        strategy=strategy,
        engine_scope=engine_scope,
        data_source=data_source.lower(),
        source_params=source_params,
        storage_root=storage_root,
        initial_balance=initial_balance,
        live=live,
        training_days=training_days,
        log_level=log_level.upper(),
    )
