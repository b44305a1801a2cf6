"""Registry of provider parsers keyed by source identifier."""

from __future__ import annotations

from marketnorm.core.exceptions import ConfigurationError, UnsupportedSourceError
from marketnorm.core.logging import get_logger
from marketnorm.core.models.market import DataSource
from marketnorm.core.parsing.alpha_vantage import AlphaVantageParser
from marketnorm.core.parsing.base import ProviderParser
from marketnorm.core.parsing.iex import IEXCloudParser
from marketnorm.core.parsing.polygon import PolygonParser
from marketnorm.core.parsing.quandl import QuandlParser
from marketnorm.core.parsing.yahoo import YahooFinanceParser

logger = get_logger(__name__)


def _source_key(source: str | DataSource) -> str:
    return source.value if isinstance(source, DataSource) else str(source)


class ParserRegistry:
    """Registry mapping source identifiers to parser strategies."""

    def __init__(self) -> None:
        self._parsers: dict[str, ProviderParser] = {}

    def register(self, parser: ProviderParser) -> None:
        """注册解析器.

        Raises:
            ConfigurationError: 解析器未实现 ProviderParser 接口或缺少 source
        """
        if not isinstance(parser, ProviderParser):
            raise ConfigurationError(
                "Parser must implement ProviderParser",
                details={"parser_class": type(parser).__name__},
            )
        source = getattr(parser, "source", None)
        if not source:
            raise ConfigurationError("Parser source cannot be empty")
        if source in self._parsers:
            logger.warning(f"Overriding existing parser: {source}")
        self._parsers[source] = parser
        logger.debug(f"Registered parser: {source}")

    def unregister(self, source: str | DataSource) -> bool:
        return self._parsers.pop(_source_key(source), None) is not None

    def get(self, source: str | DataSource) -> ProviderParser:
        key = _source_key(source)
        try:
            return self._parsers[key]
        except KeyError:
            raise UnsupportedSourceError(key, available=self.sources()) from None

    def sources(self) -> list[str]:
        return sorted(self._parsers)

    def __contains__(self, source: object) -> bool:
        return isinstance(source, (str, DataSource)) and _source_key(source) in self._parsers


def create_default_registry() -> ParserRegistry:
    """Registry holding the built-in provider parsers."""

    registry = ParserRegistry()
    for parser in (
        AlphaVantageParser(),
        YahooFinanceParser(),
        IEXCloudParser(),
        PolygonParser(),
        QuandlParser(),
    ):
        registry.register(parser)
    return registry
