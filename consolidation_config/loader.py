"""
Loader -- YAML file reading and parsing into config dataclasses.

Responsibility:
    Read YAML files with ``yaml.safe_load`` and parse the plain dicts
    into the frozen configuration dataclasses of
    ``consolidation_config.schema``.
    An optional override file is layered over the base document before
    parsing.

Failure modes:
    - ``FileNotFoundError`` if a YAML path does not exist.
    - ``yaml.YAMLError`` on malformed YAML.
    - ``KeyError`` if a required key is missing or an account key is not
      declared in the ``chart`` section.
    - ``ValueError`` on invalid enum values or failed dataclass validation.
"""

from __future__ import annotations

import copy
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from consolidation_config.schema import ConsolidationConfig, SpecialAccounts
from consolidation_kernel.domain.accounts import AccountCategory
from consolidation_kernel.domain.dtos import AccountRef
from consolidation_kernel.domain.intercompany import (
    AmountBasis,
    EliminationPair,
    EliminationRule,
    EliminationType,
    IntercompanyTransactionType,
    TransactionSide,
)
from consolidation_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "consolidation.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_account(data: dict[str, Any]) -> AccountRef:
    return AccountRef(
        number=str(data["number"]),
        name=data["name"],
        category=AccountCategory(data["category"]),
    )


def parse_chart(data: dict[str, Any]) -> dict[str, AccountRef]:
    return {key: parse_account(value) for key, value in data.items()}


def parse_pair(data: dict[str, Any], chart: dict[str, AccountRef]) -> EliminationPair:
    debit = data["debit"]
    credit = data["credit"]
    return EliminationPair(
        elimination_type=EliminationType(data["type"]),
        debit_account=chart[debit["account"]],
        debit_side=TransactionSide(debit["side"]),
        credit_account=chart[credit["account"]],
        credit_side=TransactionSide(credit["side"]),
        basis=AmountBasis(data.get("basis", AmountBasis.AMOUNT.value)),
    )


def parse_rule(data: dict[str, Any], chart: dict[str, AccountRef]) -> EliminationRule:
    """
    Parse an ``EliminationRule`` from a dict.

    Raises:
        KeyError: if ``name``, ``transaction_type`` or ``pairs`` is missing,
            or a pair references an account key not in the chart.
    """
    rate = data.get("unrealized_profit_rate")
    return EliminationRule(
        name=data["name"],
        transaction_type=IntercompanyTransactionType(data["transaction_type"]),
        pairs=tuple(parse_pair(p, chart) for p in data["pairs"]),
        priority=int(data.get("priority", 100)),
        is_active=bool(data.get("is_active", True)),
        is_automatic=bool(data.get("is_automatic", True)),
        unrealized_profit_rate=Decimal(str(rate)) if rate is not None else None,
        description=data.get("description", ""),
    )


def parse_config(data: dict[str, Any]) -> ConsolidationConfig:
    chart = parse_chart(data.get("chart", {}))
    special = data["accounts"]
    accounts = SpecialAccounts(
        cta=chart[special["cta"]],
        ic_variance=chart[special["ic_variance"]],
        equity_method_investment=chart[special["equity_method_investment"]],
        equity_pickup_income=chart[special["equity_pickup_income"]],
    )
    matching = data.get("matching", {})
    execution = data.get("execution", {})
    return ConsolidationConfig(
        accounts=accounts,
        elimination_rules=tuple(
            parse_rule(r, chart) for r in data.get("elimination_rules", [])
        ),
        matching_tolerance=Decimal(str(matching.get("amount_tolerance", "0.01"))),
        date_tolerance_days=int(matching.get("date_tolerance_days", 3)),
        max_workers=int(execution.get("max_workers", 4)),
        chart=chart,
    )


def merge_config_data(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Layer an override document on top of a base document.

    Mapping sections (``chart``, ``accounts``, ``matching``,
    ``execution``) merge key by key.  ``elimination_rules`` merge by rule
    name: an override entry replaces the fields it names on the existing
    rule, and an entry with a new name is appended.  Neither input is
    modified.
    """
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if key == "elimination_rules":
            merged[key] = _merge_rules(merged.get(key, []), value or [])
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **copy.deepcopy(value)}
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _merge_rules(
    base: list[dict[str, Any]], overlay: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    rules = {rule["name"]: rule for rule in base}
    order = [rule["name"] for rule in base]
    for rule in overlay:
        name = rule["name"]
        if name in rules:
            rules[name] = {**rules[name], **copy.deepcopy(rule)}
        else:
            rules[name] = copy.deepcopy(rule)
            order.append(name)
    return [rules[name] for name in order]


def load_config(
    path: Path | str | None = None,
    overrides: Path | str | None = None,
) -> ConsolidationConfig:
    """
    Load configuration from ``path`` or from the packaged defaults.

    ``overrides`` names a second YAML file layered on top with
    ``merge_config_data``; a group typically ships only the rules and
    tolerances it changes.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(config_path)
    if overrides is not None:
        data = merge_config_data(data, load_yaml_file(Path(overrides)))
    config = parse_config(data)
    logger.info(
        "consolidation_config_loaded",
        extra={
            "path": str(config_path),
            "overrides": str(overrides) if overrides is not None else None,
            "rule_count": len(config.elimination_rules),
            "matching_tolerance": str(config.matching_tolerance),
        },
    )
    return config
