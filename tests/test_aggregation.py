import itertools
from types import SimpleNamespace

import pytest

from aggregation import (HectareSummary, count, count_by, field_equals, kg_to_tonnes,
                         summarize_admin, summarize_emissions, summarize_hectares,
                         summarize_operator, summarize_tokens, total, total_by)
from database import EMISSION_TYPES, HECTARE_STATUSES
from errors import ValidationError


def test_empty_input_sums_to_zero():
    assert total([], "size") == 0.0
    assert count([]) == 0
    assert total_by([], "emission_amount", "emission_type", EMISSION_TYPES) == {
        "cultivation": 0.0, "harvest": 0.0, "transport": 0.0, "processing": 0.0,
    }


def test_empty_summaries():
    assert summarize_hectares([]) == HectareSummary()
    assert summarize_hectares([]).active_count == 0
    emissions = summarize_emissions([])
    assert emissions.total_kg == 0.0
    assert emissions.total_tonnes == 0.0
    tokens = summarize_tokens([])
    assert (tokens.total_amount, tokens.total_value, tokens.earned_amount) == (0.0, 0.0, 0.0)


def test_sum_does_not_depend_on_record_order():
    records = [{"amount": v} for v in (0.1, 0.2, 0.3, 1e16, 1.0, 3.3)]
    expected = total(records, "amount")
    for ordering in itertools.permutations(records):
        assert total(list(ordering), "amount") == expected


def test_sum_of_tenths_is_exact():
    assert total([{"amount": 0.1}] * 10, "amount") == 1.0


def test_reads_attributes_and_numeric_strings():
    records = [SimpleNamespace(size=2), {"size": "12.5"}, {"size": 0.5}]
    assert total(records, "size") == 15.0


@pytest.mark.parametrize("bad", [None, "", "abc", True, float("nan"), float("inf"), object()])
def test_malformed_numbers_are_rejected(bad):
    with pytest.raises(ValidationError) as info:
        total([{"size": 1}, {"size": bad}], "size")
    assert info.value.field == "size"


def test_filtered_count_and_sum():
    tokens = [
        {"amount": 10, "token_type": "earned"},
        {"amount": 4, "token_type": "purchased"},
        {"amount": 6, "token_type": "earned"},
    ]
    earned = field_equals("token_type", "earned")
    assert count(tokens, where=earned) == 2
    assert total(tokens, "amount", where=earned) == 16.0


def test_grouping_keeps_every_category():
    hectares = [{"status": "active"}, {"status": "active"}, {"status": "harvested"}]
    assert count_by(hectares, "status", HECTARE_STATUSES) == {
        "active": 2, "inactive": 0, "harvested": 1,
    }


def test_unexpected_category_is_rejected():
    with pytest.raises(ValidationError):
        count_by([{"status": "sold"}], "status", HECTARE_STATUSES)


def test_kg_to_tonnes():
    assert kg_to_tonnes(500) == 0.5
    assert kg_to_tonnes(0) == 0.0


def test_operator_summary_for_one_parcel_and_one_emission():
    hectares = [{"size": 10, "status": "active"}]
    emissions = [{"emission_amount": 500, "emission_type": "cultivation"}]
    summary = summarize_operator(hectares, emissions, [])
    assert summary.total_hectares == 10.0
    assert summary.active_hectares == 1
    assert summary.total_emissions == 500.0
    assert summary.emissions.total_tonnes == 0.5
    assert summary.emissions.by_type["cultivation"] == 500.0
    assert summary.emissions.by_type["harvest"] == 0.0
    assert summary.total_tokens == 0.0


def test_token_summary():
    tokens = [
        {"amount": 10, "value": 100, "token_type": "earned"},
        {"amount": 5, "value": 60, "token_type": "purchased"},
        {"amount": 2, "value": 0, "token_type": "retired"},
    ]
    summary = summarize_tokens(tokens)
    assert summary.total_amount == 17.0
    assert summary.total_value == 160.0
    assert summary.earned_amount == 10.0


def test_admin_summary_counts_operators_by_their_own_flag():
    operators = [{"is_active": True}, {"is_active": False}]
    hectares = [{"size": 5, "status": "active"}, {"size": 3, "status": "inactive"}]
    summary = summarize_admin(operators, hectares, [], [])
    assert summary.total_hectares == 8.0
    assert summary.operator_count == 2
    assert summary.active_operator_count == 1
    assert summary.total_emissions == 0.0
