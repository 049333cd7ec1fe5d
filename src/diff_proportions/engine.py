from __future__ import annotations

import math
from dataclasses import replace
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from diff_proportions.models import ProportionItem
from diff_proportions.utils import (
    HUNDRED,
    TARGET_SHARE_DIGITS,
    increment_precision,
    percent_share,
    round_digits,
    to_decimal,
)

Number = Decimal | int | float | str


class ProportionError(ValueError):
    pass


class InvalidTargetSum(ProportionError):
    pass


class InvalidIncrement(ProportionError):
    pass


class InsufficientItems(ProportionError):
    pass


class ProportionEngine:
    """Greedy step-by-step convergence of current values toward a target percentage profile.

    Every call to :meth:`step` adds ``increment`` to exactly one item: the one whose
    simulated increment leaves the smallest standard deviation of
    ``target_share - current_share`` across all items.
    """

    def __init__(self, target_sum: Number, increment: Number, target_shares: Iterable[Number] | None) -> None:
        shares = _validated_items(target_sum, increment, target_shares)
        self._init_scalars(target_sum, increment)

        self._items: dict[int, ProportionItem] = {}
        for key, raw_share in enumerate(shares, start=1):
            share = to_decimal(raw_share)
            self._items[key] = ProportionItem(
                current_value=Decimal(0),
                current_share=Decimal(0),
                target_value=self._target_value(share),
                target_share=share,
            )

    @classmethod
    def from_item_pairs(
        cls,
        target_sum: Number,
        increment: Number,
        item_pairs: Iterable[tuple[Number, Number]] | None,
    ) -> ProportionEngine:
        """Build an engine from ``(current_value, target_share)`` pairs."""
        pairs = _validated_items(target_sum, increment, item_pairs)
        engine = cls.__new__(cls)
        engine._init_scalars(target_sum, increment)

        values = [to_decimal(value) for value, _ in pairs]
        shares = [to_decimal(share) for _, share in pairs]
        initial_sum = sum(values, Decimal(0))

        engine._items = {}
        for key, (value, share) in enumerate(zip(values, shares), start=1):
            engine._items[key] = ProportionItem(
                current_value=value,
                current_share=round_digits(percent_share(value, initial_sum), engine._precision),
                target_value=engine._target_value(share),
                target_share=round_digits(share, TARGET_SHARE_DIGITS),
            )
        return engine

    def _init_scalars(self, target_sum: Number, increment: Number) -> None:
        self._target_sum = to_decimal(target_sum)
        self._increment = to_decimal(increment)
        self._is_increasing = self._increment > 0
        self._precision = increment_precision(self._increment)

    def _target_value(self, target_share: Decimal) -> Decimal:
        return round_digits(self._target_sum * (target_share / HUNDRED), self._precision)

    @property
    def items(self) -> Mapping[int, ProportionItem]:
        return MappingProxyType(dict(self._items))

    @property
    def target_sum(self) -> Decimal:
        return self._target_sum

    @property
    def increment(self) -> Decimal:
        return self._increment

    @property
    def precision(self) -> int:
        return self._precision

    @property
    def is_increasing(self) -> bool:
        return self._is_increasing

    def current_sum(self) -> Decimal:
        return sum((item.current_value for item in self._items.values()), Decimal(0))

    def diff_average(self) -> Decimal:
        return _mean([item.share_diff for item in self._items.values()])

    def diff_variance(self) -> Decimal:
        return _variance([item.share_diff for item in self._items.values()])

    def diff_std_dev(self) -> Decimal:
        return _sqrt(self.diff_variance())

    def can_increment(self) -> bool:
        next_sum = self.current_sum() + self._increment
        if self._is_increasing:
            return next_sum <= self._target_sum
        return next_sum >= self._target_sum

    def candidate_deviations(self) -> dict[int, Decimal]:
        """Simulated share standard deviation for each key, in key order.

        Empty when no further step is allowed.
        """
        if not self.can_increment():
            return {}

        values = [item.current_value for item in self._items.values()]
        targets = [item.target_share for item in self._items.values()]
        deviations: dict[int, Decimal] = {}
        for index, key in enumerate(self._items):
            simulated = list(values)
            simulated[index] += self._increment
            deviations[key] = _share_std_dev(simulated, targets)
        return deviations

    def next_item_to_increment(self) -> int | None:
        deviations = self.candidate_deviations()
        if not deviations:
            return None
        # min() keeps the first minimum, so ties resolve to the lowest key.
        return min(deviations, key=deviations.__getitem__)

    def step(self) -> int | None:
        key = self.next_item_to_increment()
        if key is None:
            return None

        chosen = self._items[key]
        self._items[key] = replace(chosen, current_value=chosen.current_value + self._increment)

        total = self.current_sum()
        for item_key, item in self._items.items():
            self._items[item_key] = replace(item, current_share=percent_share(item.current_value, total))
        return key


def _validated_items(target_sum: Number, increment: Number, items: Iterable | None) -> list:
    if to_decimal(target_sum) <= 0:
        raise InvalidTargetSum(f"Target sum must be greater than zero, got {target_sum}.")
    if to_decimal(increment) == 0:
        raise InvalidIncrement("Increment must not be zero.")
    if items is None:
        raise InsufficientItems("Item collection is required.")

    materialized = list(items)
    if len(materialized) < 2:
        raise InsufficientItems(f"At least two items are required, got {len(materialized)}.")
    return materialized


def _share_std_dev(values: Sequence[Decimal], target_shares: Sequence[Decimal]) -> Decimal:
    total = sum(values, Decimal(0))
    diffs = [target - percent_share(value, total) for value, target in zip(values, target_shares)]
    return _sqrt(_variance(diffs))


def _mean(values: Sequence[Decimal]) -> Decimal:
    return sum(values, Decimal(0)) / len(values)


def _variance(values: Sequence[Decimal]) -> Decimal:
    average = _mean(values)
    return _mean([(value - average) ** 2 for value in values])


def _sqrt(value: Decimal) -> Decimal:
    return Decimal(str(math.sqrt(float(value))))
