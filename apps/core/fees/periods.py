"""
Billing period calendar.

A billing period is one calendar month. Periods carry their year so that
ranges spanning December/January compare and iterate correctly.
"""
from __future__ import annotations

from datetime import datetime
from typing import NamedTuple

from django.utils import timezone


PERIOD_LABELS = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sept', 'Oct', 'Nov', 'Dec')

_LABEL_ALIASES = {'Sep': 'Sept'}


def period_index(name: str) -> int:
    label = _LABEL_ALIASES.get(name, name)
    try:
        return PERIOD_LABELS.index(label)
    except ValueError:
        raise ValueError(f'Unknown billing period {name!r}.') from None


class BillingPeriod(NamedTuple):
    year: int
    index: int

    @property
    def label(self) -> str:
        return PERIOD_LABELS[self.index]

    @property
    def key(self) -> int:
        return self.year * 12 + self.index

    @classmethod
    def from_key(cls, key: int) -> BillingPeriod:
        year, index = divmod(key, 12)
        return cls(year, index)

    @classmethod
    def from_label(cls, label: str, year: int) -> BillingPeriod:
        return cls(int(year), period_index(label))

    @classmethod
    def from_date(cls, value) -> BillingPeriod:
        if isinstance(value, datetime):
            if timezone.is_aware(value):
                value = timezone.localtime(value)
            value = value.date()
        return cls(value.year, value.month - 1)

    def shift(self, months: int) -> BillingPeriod:
        return BillingPeriod.from_key(self.key + months)

    def __str__(self):
        return f"{self.label} {self.year}"


def current_period(clock=None) -> BillingPeriod:
    return BillingPeriod.from_date(clock if clock is not None else timezone.now())


def periods_between(start: BillingPeriod, end: BillingPeriod) -> list[BillingPeriod]:
    return [BillingPeriod.from_key(key) for key in range(start.key, end.key + 1)]
