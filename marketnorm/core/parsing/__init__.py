"""Provider payload parsing."""

from marketnorm.core.parsing.alpha_vantage import AlphaVantageParser
from marketnorm.core.parsing.base import (
    ParsedMetadata,
    ParseReport,
    ParseStats,
    ParsingIssue,
    ParsingIssueType,
    ProviderParser,
    RawRow,
)
from marketnorm.core.parsing.iex import IEXCloudParser
from marketnorm.core.parsing.parser import ParsingDiagnostics, ResponseParser, describe_structure
from marketnorm.core.parsing.polygon import PolygonParser
from marketnorm.core.parsing.quandl import QuandlParser
from marketnorm.core.parsing.registry import ParserRegistry, create_default_registry
from marketnorm.core.parsing.yahoo import YahooFinanceParser

__all__ = [
    "AlphaVantageParser",
    "IEXCloudParser",
    "ParseReport",
    "ParseStats",
    "ParsedMetadata",
    "ParserRegistry",
    "ParsingDiagnostics",
    "ParsingIssue",
    "ParsingIssueType",
    "PolygonParser",
    "ProviderParser",
    "QuandlParser",
    "RawRow",
    "ResponseParser",
    "YahooFinanceParser",
    "create_default_registry",
    "describe_structure",
]
