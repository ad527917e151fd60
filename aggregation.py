# aggregation.py
"""
Summary statistics for the dashboard.

Everything here is a pure function of the records passed in: nothing is
cached and nothing touches the store. Records may be ORM rows or plain
mappings. Sums use ``math.fsum`` so the result does not depend on record order.
"""
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from numbers import Real

from database import HECTARE_STATUSES, EMISSION_TYPES
from errors import ValidationError

KG_PER_TONNE = 1000.0


def _value(record, name):
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _number(record, name):
    raw = _value(record, name)
    if isinstance(raw, bool) or raw is None:
        raise ValidationError(f"{name} is not a number: {raw!r}", field=name)
    if isinstance(raw, (Real, Decimal)):
        number = float(raw)
    elif isinstance(raw, str):
        try:
            number = float(raw.strip())
        except ValueError:
            raise ValidationError(f"{name} is not a number: {raw!r}", field=name) from None
    else:
        raise ValidationError(f"{name} is not a number: {raw!r}", field=name)
    if not math.isfinite(number):
        raise ValidationError(f"{name} is not a finite number: {raw!r}", field=name)
    return number


def field_equals(name, expected):
    """Predicate matching records whose ``name`` field equals ``expected``."""
    return lambda record: _value(record, name) == expected


def total(records, name, where=None):
    """Sum of a numeric field, optionally over the records matching ``where``. 0.0 when empty."""
    values = [_number(r, name) for r in records if where is None or where(r)]
    return math.fsum(values)


def count(records, where=None):
    if where is None:
        return len(records)
    return sum(1 for r in records if where(r))


def total_by(records, name, key, categories):
    """Sum of ``name`` per value of ``key``. Every category is present, 0.0 if unused."""
    buckets = {category: [] for category in categories}
    for record in records:
        category = _value(record, key)
        if category not in buckets:
            raise ValidationError(f"unexpected {key}: {category!r}", field=key)
        buckets[category].append(_number(record, name))
    return {category: math.fsum(values) for category, values in buckets.items()}


def count_by(records, key, categories):
    counts = {category: 0 for category in categories}
    for record in records:
        category = _value(record, key)
        if category not in counts:
            raise ValidationError(f"unexpected {key}: {category!r}", field=key)
        counts[category] += 1
    return counts


def kg_to_tonnes(kg):
    return kg / KG_PER_TONNE


@dataclass(frozen=True)
class HectareSummary:
    total_size: float = 0.0
    count: int = 0
    by_status: dict = field(default_factory=lambda: {s: 0 for s in HECTARE_STATUSES})

    @property
    def active_count(self):
        return self.by_status["active"]


@dataclass(frozen=True)
class EmissionSummary:
    total_kg: float = 0.0
    by_type: dict = field(default_factory=lambda: {t: 0.0 for t in EMISSION_TYPES})

    @property
    def total_tonnes(self):
        return kg_to_tonnes(self.total_kg)


@dataclass(frozen=True)
class TokenSummary:
    total_amount: float = 0.0
    total_value: float = 0.0
    earned_amount: float = 0.0


@dataclass(frozen=True)
class OperatorSummary:
    hectares: HectareSummary
    emissions: EmissionSummary
    tokens: TokenSummary

    @property
    def total_hectares(self):
        return self.hectares.total_size

    @property
    def active_hectares(self):
        return self.hectares.active_count

    @property
    def total_tokens(self):
        return self.tokens.total_amount

    @property
    def total_emissions(self):
        return self.emissions.total_kg


@dataclass(frozen=True)
class AdminSummary:
    operator_count: int
    active_operator_count: int
    hectares: HectareSummary
    emissions: EmissionSummary
    tokens: TokenSummary

    @property
    def total_hectares(self):
        return self.hectares.total_size

    @property
    def total_tokens(self):
        return self.tokens.total_amount

    @property
    def total_emissions(self):
        return self.emissions.total_kg


def summarize_hectares(hectares):
    return HectareSummary(
        total_size=total(hectares, "size"),
        count=count(hectares),
        by_status=count_by(hectares, "status", HECTARE_STATUSES),
    )


def summarize_emissions(emissions):
    return EmissionSummary(
        total_kg=total(emissions, "emission_amount"),
        by_type=total_by(emissions, "emission_amount", "emission_type", EMISSION_TYPES),
    )


def summarize_tokens(tokens):
    return TokenSummary(
        total_amount=total(tokens, "amount"),
        total_value=total(tokens, "value"),
        earned_amount=total(tokens, "amount", where=field_equals("token_type", "earned")),
    )


def summarize_operator(hectares, emissions, tokens):
    return OperatorSummary(
        hectares=summarize_hectares(hectares),
        emissions=summarize_emissions(emissions),
        tokens=summarize_tokens(tokens),
    )


def summarize_admin(operators, hectares, emissions, tokens):
    """Totals across every operator. Operators are counted active by their own flag only."""
    return AdminSummary(
        operator_count=count(operators),
        active_operator_count=count(operators, where=lambda p: bool(_value(p, "is_active"))),
        hectares=summarize_hectares(hectares),
        emissions=summarize_emissions(emissions),
        tokens=summarize_tokens(tokens),
    )
