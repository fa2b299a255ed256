"""Load the clinical lookup tables shipped with the calculator.

This module loads the read-only content tables from:
    tables/

Tables loaded:
    - dvt_weights.csv: Caprini and Wells factor weights and labels
    - recommendations.yaml: clinical guidance and interventions per type/level
    - interpretations.yaml: one-line reading of each risk level
    - consultations.yaml: specialist referral details per assessment type
    - meal_menus.json: rotating breakfast/lunch/dinner/snack menus
"""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import polars as pl
import yaml

# Base directory for lookup tables
TABLES_DIR = Path(__file__).parent / "tables"

# Cache loaded tables
_CACHE: dict[str, Any] = {}

# Menu sizes the meal-plan index formulas rely on
MENU_SIZES = {"breakfast": 4, "lunch": 4, "dinner": 6}


def _table_path(filename: str) -> Path:
    """Get the path of a lookup table, failing loudly when it is missing."""
    path = TABLES_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"Lookup table {filename} not found. Expected file: {path}")
    return path


def _load_yaml(filename: str) -> dict[str, Any]:
    with open(_table_path(filename), encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Lookup table {filename} must be a mapping at the top level")
    return data


def load_dvt_weights(strategy: str = "caprini") -> Mapping[str, int]:
    """Load DVT factor weights for one scoring strategy from dvt_weights.csv.

    Args:
        strategy: "caprini" or "wells"

    Returns:
        Read-only mapping of factor name to points
    """
    cache_key = f"dvt_weights_{strategy}"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    df = pl.read_csv(_table_path("dvt_weights.csv")).filter(pl.col("strategy") == strategy)
    if df.height == 0:
        raise ValueError(f"No DVT weights found for strategy '{strategy}'")

    weights = {str(row["factor"]): int(row["weight"]) for row in df.iter_rows(named=True)}

    _CACHE[cache_key] = MappingProxyType(weights)
    return _CACHE[cache_key]


def load_dvt_labels(strategy: str = "caprini") -> Mapping[str, str]:
    """Load human-readable DVT factor labels (e.g. "Age 41-60 years")."""
    cache_key = f"dvt_labels_{strategy}"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    df = pl.read_csv(_table_path("dvt_weights.csv")).filter(pl.col("strategy") == strategy)
    labels = {str(row["factor"]): str(row["label"]) for row in df.iter_rows(named=True)}

    _CACHE[cache_key] = MappingProxyType(labels)
    return _CACHE[cache_key]


def load_recommendations() -> Mapping[str, Mapping[str, Mapping[str, tuple[str, ...]]]]:
    """Load the recommendation catalog from recommendations.yaml.

    Returns:
        Nested read-only mapping: assessment type -> risk level ->
        {"clinical": (...), "interventions": (...)}
    """
    cache_key = "recommendations"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    raw = _load_yaml("recommendations.yaml")
    catalog: dict[str, Mapping[str, Mapping[str, tuple[str, ...]]]] = {}
    for assessment_type, levels in raw.items():
        by_level: dict[str, Mapping[str, tuple[str, ...]]] = {}
        for level, entry in (levels or {}).items():
            entry = entry or {}
            by_level[str(level)] = MappingProxyType(
                {
                    "clinical": tuple(str(line) for line in entry.get("clinical") or []),
                    "interventions": tuple(
                        str(line) for line in entry.get("interventions") or []
                    ),
                }
            )
        catalog[str(assessment_type)] = MappingProxyType(by_level)

    _CACHE[cache_key] = MappingProxyType(catalog)
    return _CACHE[cache_key]


def load_interpretations() -> Mapping[str, Mapping[str, str]]:
    """Load risk-level interpretations from interpretations.yaml.

    Keys are assessment types, plus "dvt_wells" for the Wells strategy.
    """
    cache_key = "interpretations"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    raw = _load_yaml("interpretations.yaml")
    interpretations = {
        str(key): MappingProxyType({str(level): str(text) for level, text in levels.items()})
        for key, levels in raw.items()
    }

    _CACHE[cache_key] = MappingProxyType(interpretations)
    return _CACHE[cache_key]


def load_consultations() -> Mapping[str, Mapping[str, Any]]:
    """Load specialist referral details from consultations.yaml."""
    cache_key = "consultations"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    raw = _load_yaml("consultations.yaml")
    consultations: dict[str, Mapping[str, Any]] = {}
    for assessment_type, entry in raw.items():
        entry = dict(entry)
        entry["urgency"] = MappingProxyType(
            {str(level): str(urgency) for level, urgency in (entry.get("urgency") or {}).items()}
        )
        consultations[str(assessment_type)] = MappingProxyType(entry)

    _CACHE[cache_key] = MappingProxyType(consultations)
    return _CACHE[cache_key]


def load_meal_menus() -> Mapping[str, Mapping[str, tuple[str, ...]]]:
    """Load rotating meal menus from meal_menus.json.

    Returns:
        Read-only mapping: meal ("breakfast", "lunch", "dinner", "snacks") ->
        menu variant ("normal", "diabetes", ...) -> tuple of dishes
    """
    cache_key = "meal_menus"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    with open(_table_path("meal_menus.json"), encoding="utf-8") as f:
        raw = json.load(f)

    menus: dict[str, Mapping[str, tuple[str, ...]]] = {}
    for meal, variants in raw.items():
        frozen = {str(name): tuple(str(dish) for dish in dishes) for name, dishes in variants.items()}
        expected = MENU_SIZES.get(meal)
        for name, dishes in frozen.items():
            if expected is not None and len(dishes) != expected:
                raise ValueError(
                    f"Menu {meal}/{name} must have {expected} items, found {len(dishes)}"
                )
            if not dishes:
                raise ValueError(f"Menu {meal}/{name} is empty")
        menus[str(meal)] = MappingProxyType(frozen)

    _CACHE[cache_key] = MappingProxyType(menus)
    return _CACHE[cache_key]


def clear_cache() -> None:
    """Clear the table cache."""
    _CACHE.clear()
