"""
Triangular path catalog.

Static definitions of which pairs form each cycle, grouped into named
sets per exchange. The engine consumes these; it never derives them.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

import orjson

from triarb.core.errors import ValidationError
from triarb.core.types import Side, Step, TriangularPath


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class PathSet:
    """Named group of paths sharing a profit threshold."""

    name: str
    exchange: str
    paths: tuple[TriangularPath, ...]
    min_profit_threshold: Decimal | None = None


def build_path(path_id: str, exchange: str, legs: Iterable[str]) -> TriangularPath:
    """
    Build a path from compact leg strings.

    Each leg reads "<side> <BASE>/<QUOTE>", e.g. "buy ETH/ZAR".

    Example:
        >>> build_path("ZAR_ETH_USDT_ZAR", "valr",
        ...            ["buy ETH/ZAR", "sell ETH/USDT", "sell USDT/ZAR"]).sequence
        'ZAR → ETH → USDT → ZAR'
    """
    steps = []
    for leg in legs:
        side_text, market = leg.split()
        base, quote = market.split("/")
        steps.append(Step(pair=f"{base}{quote}", side=Side(side_text.upper()), base=base, quote=quote))

    currencies = [steps[0].from_currency] + [step.to_currency for step in steps]
    return TriangularPath(
        id=path_id,
        sequence=" → ".join(currencies),
        steps=tuple(steps),
        exchange=exchange,
    )


def _path_set(
    name: str,
    exchange: str,
    threshold: str | None,
    paths: dict[str, list[str]],
) -> PathSet:
    return PathSet(
        name=name,
        exchange=exchange,
        paths=tuple(build_path(pid, exchange, legs) for pid, legs in paths.items()),
        min_profit_threshold=Decimal(threshold) if threshold else None,
    )


# =============================================================================
# Built-in Path Sets
# =============================================================================


def _builtin_sets() -> list[PathSet]:
    return [
        _path_set("SET_1_BTC_BRIDGE", "binance", "0.003", {
            "USDT_BTC_ETH_USDT": ["buy BTC/USDT", "buy ETH/BTC", "sell ETH/USDT"],
            "USDT_ETH_BTC_USDT": ["buy ETH/USDT", "sell ETH/BTC", "sell BTC/USDT"],
            "USDT_BTC_BNB_USDT": ["buy BTC/USDT", "buy BNB/BTC", "sell BNB/USDT"],
            "USDT_BNB_BTC_USDT": ["buy BNB/USDT", "sell BNB/BTC", "sell BTC/USDT"],
            "USDT_BTC_SOL_USDT": ["buy BTC/USDT", "buy SOL/BTC", "sell SOL/USDT"],
            "USDT_BTC_XRP_USDT": ["buy BTC/USDT", "buy XRP/BTC", "sell XRP/USDT"],
        }),
        _path_set("SET_2_ETH_BRIDGE", "binance", "0.003", {
            "USDT_ETH_BNB_USDT": ["buy ETH/USDT", "buy BNB/ETH", "sell BNB/USDT"],
            "USDT_BNB_ETH_USDT": ["buy BNB/USDT", "sell BNB/ETH", "sell ETH/USDT"],
            "USDT_ETH_LINK_USDT": ["buy ETH/USDT", "buy LINK/ETH", "sell LINK/USDT"],
        }),
        _path_set("SET_3_FOUR_LEG", "binance", "0.004", {
            "USDT_BTC_ETH_BNB_USDT": [
                "buy BTC/USDT", "buy ETH/BTC", "buy BNB/ETH", "sell BNB/USDT",
            ],
        }),
        _path_set("SET_1_ETH_FOCUS", "valr", None, {
            "ZAR_ETH_USDT_ZAR": ["buy ETH/ZAR", "sell ETH/USDT", "sell USDT/ZAR"],
            "ZAR_USDT_ETH_ZAR": ["buy USDT/ZAR", "buy ETH/USDT", "sell ETH/ZAR"],
            "USDT_ETH_ZAR_USDT": ["buy ETH/USDT", "sell ETH/ZAR", "buy USDT/ZAR"],
            "USDT_ZAR_ETH_USDT": ["sell USDT/ZAR", "buy ETH/ZAR", "sell ETH/USDT"],
        }),
        _path_set("SET_2_XRP_FOCUS", "valr", None, {
            "ZAR_XRP_USDT_ZAR": ["buy XRP/ZAR", "sell XRP/USDT", "sell USDT/ZAR"],
            "ZAR_USDT_XRP_ZAR": ["buy USDT/ZAR", "buy XRP/USDT", "sell XRP/ZAR"],
            "USDT_XRP_ZAR_USDT": ["buy XRP/USDT", "sell XRP/ZAR", "buy USDT/ZAR"],
            "USDT_ZAR_XRP_USDT": ["sell USDT/ZAR", "buy XRP/ZAR", "sell XRP/USDT"],
        }),
        _path_set("SET_3_SOL_FOCUS", "valr", None, {
            "ZAR_SOL_USDT_ZAR": ["buy SOL/ZAR", "sell SOL/USDT", "sell USDT/ZAR"],
            "ZAR_USDT_SOL_ZAR": ["buy USDT/ZAR", "buy SOL/USDT", "sell SOL/ZAR"],
            "USDT_SOL_ZAR_USDT": ["buy SOL/USDT", "sell SOL/ZAR", "buy USDT/ZAR"],
            "USDT_ZAR_SOL_USDT": ["sell USDT/ZAR", "buy SOL/ZAR", "sell SOL/USDT"],
        }),
        _path_set("SET_1_USDT_FOCUS", "luno", None, {
            "USDT_XBT_ETH_USDT": ["buy XBT/USDT", "buy ETH/XBT", "sell ETH/USDT"],
            "USDT_ETH_XBT_USDT": ["buy ETH/USDT", "sell ETH/XBT", "sell XBT/USDT"],
            "USDT_ZAR_XBT_USDT": ["sell USDT/ZAR", "buy XBT/ZAR", "sell XBT/USDT"],
        }),
        _path_set("SET_2_ZAR_MAJOR", "luno", None, {
            "ZAR_XBT_ETH_ZAR": ["buy XBT/ZAR", "buy ETH/XBT", "sell ETH/ZAR"],
            "ZAR_ETH_XBT_ZAR": ["buy ETH/ZAR", "sell ETH/XBT", "sell XBT/ZAR"],
            "ZAR_USDT_XBT_ZAR": ["buy USDT/ZAR", "buy XBT/USDT", "sell XBT/ZAR"],
        }),
    ]


# =============================================================================
# Catalog Provider
# =============================================================================


class StaticPathCatalog:
    """
    In-memory path catalog.

    Features:
    - Lookup by exchange and set name, or set number ("1" -> SET_1_*)
    - Per-set profit threshold override
    - JSON file loading
    """

    def __init__(self, path_sets: Iterable[PathSet]) -> None:
        """
        Initialize catalog.

        Args:
            path_sets: Path sets across any number of exchanges.
        """
        self._sets: dict[str, list[PathSet]] = {}
        self._by_id: dict[tuple[str, str], tuple[TriangularPath, PathSet]] = {}

        for path_set in path_sets:
            exchange = path_set.exchange.lower()
            self._sets.setdefault(exchange, []).append(path_set)
            for path in path_set.paths:
                self._by_id[(exchange, path.id)] = (path, path_set)

    @classmethod
    def default(cls) -> "StaticPathCatalog":
        """Catalog with the built-in path sets."""
        return cls(_builtin_sets())

    @classmethod
    def from_file(cls, file_path: Path) -> "StaticPathCatalog":
        """
        Load a catalog from JSON.

        Expected shape::

            {"valr": {"SET_1_ETH_FOCUS": {"min_profit_threshold": "0.008",
                                          "paths": [{"id": "...", "legs": ["buy ETH/ZAR", ...]}]}}}

        Raises:
            ValidationError: If the file is malformed or a path is not a cycle.
        """
        try:
            data: dict[str, Any] = orjson.loads(file_path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            raise ValidationError(f"Cannot load path catalog {file_path}: {e}") from e

        path_sets = []
        try:
            for exchange, sets in data.items():
                for name, definition in sets.items():
                    path_sets.append(
                        _path_set(
                            name,
                            exchange.lower(),
                            definition.get("min_profit_threshold"),
                            {p["id"]: p["legs"] for p in definition["paths"]},
                        )
                    )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValidationError(f"Malformed path catalog {file_path}: {e}") from e

        logger.info(f"Loaded {len(path_sets)} path sets from {file_path}")
        return cls(path_sets)

    def path_sets(self, exchange: str) -> list[PathSet]:
        """Get all sets for an exchange."""
        return list(self._sets.get(exchange.lower(), []))

    def get_paths(self, exchange: str, path_set: str | None = None) -> list[TriangularPath]:
        """
        Get paths for an exchange.

        Args:
            exchange: Exchange name.
            path_set: Set name, set number, or None for every set.

        Returns:
            Matching paths; empty when the exchange or set is unknown.
        """
        sets = self._sets.get(exchange.lower())
        if not sets:
            logger.warning(f"No path definitions for exchange: {exchange}")
            return []

        if path_set is not None:
            prefix = f"SET_{path_set}_" if path_set.isdigit() else None
            sets = [
                s for s in sets
                if s.name == path_set or (prefix is not None and s.name.startswith(prefix))
            ]

        return [path for s in sets for path in s.paths]

    def get_path(self, exchange: str, path_id: str) -> TriangularPath | None:
        """Look up one path by id."""
        entry = self._by_id.get((exchange.lower(), path_id))
        return entry[0] if entry else None

    def threshold_for(self, exchange: str, path_id: str) -> Decimal | None:
        """Profit threshold of the set a path belongs to, if it overrides the default."""
        entry = self._by_id.get((exchange.lower(), path_id))
        return entry[1].min_profit_threshold if entry else None

    def __len__(self) -> int:
        return len(self._by_id)
