"""
Property-based tests for the French field parsers.
"""

import pytest
from hypothesis import given, settings, strategies as st

from vehicle_scout.field_parsers import (
    find_mileage,
    find_price,
    has_maintenance_history,
    normalize_text,
    parse_fuel,
    parse_mileage,
    parse_price,
    parse_transmission,
    parse_year,
    to_number_fr,
)


separators = st.sampled_from([" ", "\u00a0", "\u202f", ""])


def french_format(value: int, separator: str) -> str:
    return f"{value:,}".replace(',', separator)


@given(
    price=st.integers(min_value=1, max_value=300_000),
    separator=separators
)
@settings(max_examples=100)
def test_price_parsing_with_french_separators(price, separator):
    """
    **Feature: vehicle-scout, Property 1: French price parsing**

    For any price written with French thousands separators (space, NBSP,
    narrow NBSP) and a euro sign, parse_price returns the integer amount.
    """
    text = f"{french_format(price, separator)} €"
    assert parse_price(text) == price, f"'{text}' should parse to {price}"


@given(price=st.integers(min_value=300_001, max_value=10_000_000))
@settings(max_examples=100)
def test_implausible_prices_are_rejected(price):
    """
    **Feature: vehicle-scout, Property 2: Price plausibility**

    For any price above 300,000 €, parse_price returns None.
    """
    assert parse_price(price) is None
    assert parse_price(f"{price} €") is None


@given(
    mileage=st.integers(min_value=0, max_value=500_000),
    separator=separators
)
@settings(max_examples=100)
def test_mileage_parsing_with_french_separators(mileage, separator):
    """
    **Feature: vehicle-scout, Property 3: French mileage parsing**

    For any odometer reading between 0 and 500,000 km, parse_mileage
    returns the integer value.
    """
    text = f"{french_format(mileage, separator)} km"
    assert parse_mileage(text) == mileage


@given(year=st.integers(min_value=1990, max_value=2025))
@settings(max_examples=100)
def test_year_parsing_within_range(year):
    """
    **Feature: vehicle-scout, Property 4: Year parsing**

    For any year between 1990 and the reference year + 1, parse_year finds
    it inside surrounding text.
    """
    assert parse_year(f"Mise en circulation 03/{year}", current_year=2024) == year


def test_decimal_and_thousands_separators():
    assert to_number_fr("1,5") == 1.5
    assert to_number_fr("1,500") == 1500
    assert to_number_fr("1.234,56") == pytest.approx(1234.56)
    assert to_number_fr("1,234.56") == pytest.approx(1234.56)
    assert to_number_fr("139 000 km") == 139000
    assert to_number_fr(12000) == 12000
    assert to_number_fr("prix sur demande") is None
    assert to_number_fr(None) is None


def test_invalid_values():
    assert parse_price("0 €") is None
    assert parse_price("gratuit") is None
    assert parse_mileage(600_000) is None
    assert parse_year("1985", current_year=2024) is None
    assert parse_year("2031", current_year=2024) is None
    assert parse_year(None) is None


def test_fuel_vocabulary():
    assert parse_fuel("Peugeot 308 BlueHDi 130") == 'diesel'
    assert parse_fuel("Gazole") == 'diesel'
    assert parse_fuel("SP95") == 'essence'
    assert parse_fuel("Chevrolet Aveo essence") == 'essence'
    assert parse_fuel("Toyota Yaris Hybride") == 'hybride'
    assert parse_fuel("Électrique") == 'electrique'
    assert parse_fuel("GPL") == 'gpl'
    assert parse_fuel("Renault Clio") is None
    assert parse_fuel(None) is None


def test_transmission_vocabulary():
    assert parse_transmission("Boîte automatique") == 'automatique'
    assert parse_transmission("EDC") == 'automatique'
    assert parse_transmission("dsg") == 'automatique'
    assert parse_transmission("Boîte manuelle") == 'manuelle'
    assert parse_transmission("Renault Clio") is None


def test_normalize_text_folds_accents_and_spaces():
    assert normalize_text("  Citroën  C3 Aircross ") == "citroen c3 aircross"
    assert normalize_text(None) == ""


def test_maintenance_history_keywords():
    assert has_maintenance_history("Carnet d'entretien à jour, factures")
    assert has_maintenance_history("Révisions à jour")
    assert not has_maintenance_history("Très bon état")


def test_find_in_free_text():
    text = "Peugeot 308 2019, 85 000 km, 12 500 €"
    assert find_price(text) == 12500
    assert find_mileage(text) == 85000
