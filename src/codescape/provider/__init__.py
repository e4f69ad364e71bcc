"""Analysis provider interface and fragment builders."""

from codescape.provider.base import (
    AnalysisProvider,
    ExpandRequest,
    FileExpandRequest,
    NullProvider,
    ReferencesRequest,
    SymbolsRequest,
)

__all__ = [
    "AnalysisProvider",
    "ExpandRequest",
    "FileExpandRequest",
    "NullProvider",
    "ReferencesRequest",
    "SymbolsRequest",
]
