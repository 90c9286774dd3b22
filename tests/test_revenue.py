from decimal import Decimal

import pytest

from models import RevenueSource
from revenue import AmountUnit, euros_to_thousands, extract, parse_amount, parse_year


@pytest.mark.parametrize(
    "euros, thousands",
    [(1_500_499, 1500), (1_500_500, 1501), (1_499_999, 1500), (499, 0), (500, 1), (-1_500_500, -1501)],
)
def test_euros_to_thousands_rounds_half_away_from_zero(euros, thousands):
    assert euros_to_thousands(euros) == thousands


def test_parse_amount_tolerates_formatting():
    assert parse_amount("1 562 000") == Decimal("1562000")
    assert parse_amount("1 562 000 €") == Decimal("1562000")
    assert parse_amount("1562000,5") == Decimal("1562000.5")
    assert parse_amount(True) is None
    assert parse_amount("n/a") is None
    assert parse_amount({"value": 1}) is None


def test_parse_year_accepts_dates():
    assert parse_year(2023) == 2023
    assert parse_year("2023") == 2023
    assert parse_year("2023-12-31") == 2023
    assert parse_year("31/12/2022") == 2022
    assert parse_year("20211231") == 2021
    assert parse_year(23) is None
    assert parse_year("soon") is None


def test_direct_scalar_pair_in_data_envelope():
    fact = extract({"data": {"dernierca": 1_562_340, "dernierbildate": "2024"}})
    assert fact.year == 2024
    assert fact.amountThousands == 1562
    assert fact.source is RevenueSource.DIRECT
    assert fact.formatted == "CA (2024) = 1562 K€"


def test_direct_keys_are_case_and_convention_insensitive():
    fact = extract({"informations_financieres": {"Chiffre_Affaires": "2 000 000", "Annee": 2022}})
    assert (fact.year, fact.amountThousands) == (2022, 2000)


def test_direct_rule_wins_over_table():
    payload = {
        "dernierca": 1_000_000,
        "dernierbildate": 2022,
        "bilans": [{"anneebilan": 2023, "rescatotal": 5_000_000}],
    }
    fact = extract(payload)
    assert fact.source is RevenueSource.DIRECT
    assert (fact.year, fact.amountThousands) == (2022, 1000)


def test_direct_zero_amount_falls_through_to_table():
    payload = {"dernierca": 0, "dernierbildate": 2024, "bilans": [{"anneebilan": 2023, "rescatotal": 750_000}]}
    fact = extract(payload)
    assert fact.source is RevenueSource.TABLE
    assert (fact.year, fact.amountThousands) == (2023, 750)


def test_table_takes_most_recent_year_regardless_of_order():
    payload = {
        "bilans": [
            {"anneebilan": 2020, "rescatotal": 100_000},
            {"anneebilan": "2022", "rescatotal": 300_000},
            {"anneebilan": 2021, "rescatotal": 200_000},
        ]
    }
    fact = extract(payload)
    assert fact.source is RevenueSource.TABLE
    assert (fact.year, fact.amountThousands) == (2022, 300)


def test_table_tie_on_year_keeps_first_listed():
    fact = extract({"bilans": [{"year": 2023, "amount": 100_000}, {"year": 2023, "amount": 200_000}]})
    assert (fact.year, fact.amountThousands) == (2023, 100)


def test_table_skips_zero_amounts():
    fact = extract({"bilans": [{"year": 2023, "amount": 0}, {"year": 2022, "amount": 50_000}]})
    assert (fact.year, fact.amountThousands) == (2022, 50)


def test_table_ignores_rows_without_year_or_numeric_amount():
    payload = {
        "data": [
            {"ca": 9_000_000},
            {"exercice": "2023", "ca": "n/c"},
            {"datecloture": "2021-12-31", "chiffre_affaires": 42_000},
        ]
    }
    fact = extract(payload)
    assert (fact.year, fact.amountThousands) == (2021, 42)


def test_table_found_under_unlisted_key():
    fact = extract({"siren": "428723266", "comptes": [{"annee": 2019, "ca": 12_345_678}]})
    assert (fact.year, fact.amountThousands) == (2019, 12346)


def test_top_level_list_is_a_table():
    assert extract([{"annee": 2018, "turnover": 1000}]).year == 2018


def test_formatted_text_is_already_in_thousands():
    fact = extract({"formatted": "CA (2021) = 980 K€"})
    assert fact.source is RevenueSource.FORMATTED
    assert (fact.year, fact.amountThousands) == (2021, 980)


def test_formatted_text_tolerates_spaces_in_number():
    fact = extract({"data": {"formatted": "ca(2024)=1 562 K€"}})
    assert (fact.year, fact.amountThousands) == (2024, 1562)


def test_amount_unit_thousands_skips_division():
    fact = extract({"bilans": [{"annee": 2023, "ca": 1562}]}, AmountUnit.THOUSANDS)
    assert fact.amountThousands == 1562


@pytest.mark.parametrize(
    "payload",
    [None, 42, "nothing here", {}, {"bilans": []}, {"bilans": [{"annee": 2023}]}, {"bilans": ["x", 3]},
     {"dernierca": "abc", "dernierbildate": 2023}, {"formatted": "CA (2021) = ? K€"},
     {"dernierca": 1e40, "dernierbildate": 2023}, {"bilans": [{"annee": 2023, "ca": "1" + "0" * 40}]}],
)
def test_unmatched_payloads_return_none(payload):
    assert extract(payload) is None


def test_out_of_range_amount_falls_through_to_next_rule():
    payload = {"dernierca": "9" * 45, "dernierbildate": 2024, "bilans": [{"annee": 2023, "ca": 4_200_000}]}
    fact = extract(payload)
    assert fact.source is RevenueSource.TABLE
    assert (fact.year, fact.amountThousands) == (2023, 4200)
    assert parse_amount(1e40) is None
