from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Literal

RunStatus = Literal["converged", "noop"]


@dataclass(frozen=True)
class ProportionItem:
    current_value: Decimal
    current_share: Decimal
    target_value: Decimal
    target_share: Decimal

    @property
    def share_diff(self) -> Decimal:
        return self.target_share - self.current_share


@dataclass(frozen=True)
class StepRecord:
    step_number: int
    incremented_key: int | None
    current_values: tuple[Decimal, ...]
    current_shares: tuple[Decimal, ...]
    current_sum: Decimal
    diff_std_dev: Decimal
    next_item_key: int | None


@dataclass(frozen=True)
class ConvergenceResult:
    status: RunStatus
    message: str
    target_sum: Decimal
    final_sum: Decimal
    steps: tuple[StepRecord, ...]

    @property
    def step_count(self) -> int:
        return len(self.steps) - 1


@dataclass(frozen=True)
class ScenarioRun:
    config: RuntimeConfig
    result: ConvergenceResult


@dataclass(frozen=True)
class ItemSettings:
    target_share: Decimal
    current_value: Decimal | None = None


@dataclass(frozen=True)
class ProportionSettings:
    target_sum: Decimal
    increment: Decimal
    items: list[ItemSettings]


@dataclass(frozen=True)
class AppConfig:
    log_path: Path | None = None
    share_digits: int = 2


@dataclass(frozen=True)
class RuntimeConfig:
    version: int
    proportion: ProportionSettings
    app: AppConfig
