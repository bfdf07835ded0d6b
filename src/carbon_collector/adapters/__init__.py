"""carbon_collector.adapters — Per-market source adapters and their registry.

EU and UK allowances are not implemented yet and have no registry entry.
"""

from __future__ import annotations

from carbon_collector.adapters.base import (
    BaseAdapter,
    HtmlTableAdapter,
    Source,
    SourceAdapter,
)
from carbon_collector.adapters.carb import CarbCSVAdapter
from carbon_collector.adapters.ccer import CCERAdapter
from carbon_collector.adapters.cdr import CDRAdapter
from carbon_collector.adapters.cea import CEAAdapter
from carbon_collector.collection.fetcher import SourceFetcher
from carbon_collector.collection.renderer import PageRenderer
from carbon_collector.core.models import MarketCode

ADAPTERS: dict[MarketCode, type[BaseAdapter]] = {
    MarketCode.CEA: CEAAdapter,
    MarketCode.CCER: CCERAdapter,
    MarketCode.CCA: CarbCSVAdapter,
    MarketCode.CDR: CDRAdapter,
}

# Short names accepted by the CLI
ADAPTER_ALIASES: dict[str, MarketCode] = {
    "cea": MarketCode.CEA,
    "ccer": MarketCode.CCER,
    "carb": MarketCode.CCA,
    "cca": MarketCode.CCA,
    "cdr": MarketCode.CDR,
}


def resolve_market(name: str | MarketCode) -> MarketCode:
    """Map a market code or CLI alias to a market with a registered adapter.

    Raises:
        ValueError: Unknown name, or a market with no adapter yet.
    """
    key = str(name)
    market = ADAPTER_ALIASES.get(key.lower())
    if market is None:
        try:
            market = MarketCode(key.upper())
        except ValueError:
            raise ValueError(f"Unknown market or adapter: {name!r}") from None
    if market not in ADAPTERS:
        raise ValueError(f"No adapter implemented for market {market.value}")
    return market


def create_adapter(
    market: str | MarketCode,
    fetcher: SourceFetcher,
    renderer: PageRenderer | None = None,
) -> BaseAdapter:
    cls = ADAPTERS[resolve_market(market)]
    if issubclass(cls, HtmlTableAdapter):
        return cls(fetcher, renderer=renderer)
    return cls(fetcher)


def create_adapters(
    fetcher: SourceFetcher,
    renderer: PageRenderer | None = None,
) -> list[BaseAdapter]:
    """One adapter per registered market, in registry order."""
    return [create_adapter(market, fetcher, renderer) for market in ADAPTERS]


__all__ = [
    "ADAPTERS",
    "ADAPTER_ALIASES",
    "BaseAdapter",
    "CarbCSVAdapter",
    "CCERAdapter",
    "CDRAdapter",
    "CEAAdapter",
    "HtmlTableAdapter",
    "Source",
    "SourceAdapter",
    "create_adapter",
    "create_adapters",
    "resolve_market",
]
