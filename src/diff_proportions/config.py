from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from diff_proportions.models import AppConfig, ItemSettings, ProportionSettings, RuntimeConfig
from diff_proportions.utils import HUNDRED, to_decimal

DEFAULT_APP_LOG_PATH = Path("~/.diff-proportions/run.log").expanduser()
DEFAULT_SHARE_DIGITS = 2
DEFAULT_INCREMENT = Decimal("1")


class ConfigError(ValueError):
    pass


def _config_error(message: str) -> ConfigError:
    return ConfigError(f"Invalid scenario config: {message}")


def _format_yaml_error(exc: Exception) -> str:
    mark = getattr(exc, "problem_mark", None)
    if mark is None:
        return "YAML syntax is invalid."
    return f"YAML syntax is invalid near line {mark.line + 1}, column {mark.column + 1}."


def load_config(path: Path) -> RuntimeConfig:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise _config_error(_format_yaml_error(exc)) from exc
    if not isinstance(raw, dict):
        raise _config_error("The root value must be a mapping/object.")

    version = _required_int(raw, "version")
    if version != 1:
        raise _config_error(f"Unsupported version '{version}'. Expected version '1'.")

    proportion = parse_proportion(_required_mapping(raw, "proportion"))

    app_raw = raw.get("app", {})
    if not isinstance(app_raw, dict):
        raise _config_error("The 'app' section must be a mapping/object when provided.")
    log_path = _optional_str(app_raw, "log_path")
    share_digits = _optional_non_negative_int(app_raw, "share_digits")
    app = AppConfig(
        log_path=Path(log_path).expanduser() if log_path else DEFAULT_APP_LOG_PATH,
        share_digits=DEFAULT_SHARE_DIGITS if share_digits is None else share_digits,
    )

    return RuntimeConfig(version=version, proportion=proportion, app=app)


def parse_proportion(raw: dict[str, Any]) -> ProportionSettings:
    target_sum = _required_decimal(raw, "target_sum")
    increment = _optional_decimal(raw, "increment")
    if increment is None:
        increment = DEFAULT_INCREMENT

    items_raw = raw.get("items")
    if not isinstance(items_raw, list) or not items_raw:
        raise _config_error("'proportion.items' must be a non-empty list.")
    items = [_parse_item(item, target_sum) for item in items_raw]

    return ProportionSettings(target_sum=target_sum, increment=increment, items=items)


def _parse_item(raw: Any, target_sum: Decimal) -> ItemSettings:
    if not isinstance(raw, dict):
        raise _config_error("Each item in 'proportion.items' must be a mapping/object.")

    target_share = _optional_decimal(raw, "target_share")
    target_value = _optional_decimal(raw, "target_value")
    if (target_share is None) == (target_value is None):
        raise _config_error("Each item must define exactly one of 'target_share' or 'target_value'.")
    if target_value is not None:
        if target_sum == 0:
            raise _config_error("'target_value' requires a non-zero 'target_sum'.")
        target_share = target_value / target_sum * HUNDRED

    return ItemSettings(target_share=target_share, current_value=_optional_decimal(raw, "current_value"))


def _required_mapping(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key)
    if not isinstance(value, dict):
        raise _config_error(f"'{key}' must be a mapping/object.")
    return value


def _optional_str(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise _config_error(f"'{key}' must be a non-empty string when provided.")
    return value.strip()


def _required_int(raw: dict[str, Any], key: str) -> int:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise _config_error(f"'{key}' must be an integer.")
    return value


def _optional_non_negative_int(raw: dict[str, Any], key: str) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise _config_error(f"'{key}' must be a non-negative integer when provided.")
    return value


def _required_decimal(raw: dict[str, Any], key: str) -> Decimal:
    value = _optional_decimal(raw, key)
    if value is None:
        raise _config_error(f"'{key}' must be a number.")
    return value


def _optional_decimal(raw: dict[str, Any], key: str) -> Decimal | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise _config_error(f"'{key}' must be a number when provided.")
    try:
        parsed = to_decimal(value.strip() if isinstance(value, str) else value)
    except InvalidOperation as exc:
        raise _config_error(f"'{key}' must be a number when provided.") from exc
    if not parsed.is_finite():
        raise _config_error(f"'{key}' must be a finite number.")
    return parsed
