"""Interface to the external analysis provider (the editor side).

Every call is fire-and-forget: the provider answers later, out of band,
with a message carrying the request id. See ``codescape.session`` for how
answers are matched back to their requests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field

from codescape.exceptions import ProviderUnavailableError


class ProviderRequest(BaseModel):
    """Base for correlated requests; serialises with camelCase wire names."""

    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId")

    def to_params(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ExpandRequest(ProviderRequest):
    """Ask for the outgoing calls of the symbol at a position."""

    filepath: str
    line: int
    column: int = 1


class FileExpandRequest(ProviderRequest):
    """Ask for the files a file imports."""

    filepath: str


class ReferencesRequest(ProviderRequest):
    """Ask which files reference a symbol."""

    filepath: str
    line: int
    name: str = ""


class SymbolsRequest(ProviderRequest):
    """Ask for the document symbols of a file (used to find snippet ranges)."""

    filepath: str


class AnalysisProvider(ABC):
    """Abstract base for analysis providers."""

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    async def request_expand(self, request: ExpandRequest) -> None:
        """Send an expand request; the result arrives later."""
        ...

    @abstractmethod
    async def request_file_expand(self, request: FileExpandRequest) -> None:
        ...

    @abstractmethod
    async def request_references(self, request: ReferencesRequest) -> None:
        ...

    @abstractmethod
    async def request_symbols(self, request: SymbolsRequest) -> None:
        ...

    @abstractmethod
    async def navigate(self, filepath: str, line: int) -> None:
        """Ask the editor to open ``filepath`` at ``line``. Best effort."""
        ...


class NullProvider(AnalysisProvider):
    """Stand-in used when no editor is connected: every call is unavailable."""

    @property
    def available(self) -> bool:
        return False

    async def request_expand(self, request: ExpandRequest) -> None:
        raise ProviderUnavailableError()

    async def request_file_expand(self, request: FileExpandRequest) -> None:
        raise ProviderUnavailableError()

    async def request_references(self, request: ReferencesRequest) -> None:
        raise ProviderUnavailableError()

    async def request_symbols(self, request: SymbolsRequest) -> None:
        raise ProviderUnavailableError()

    async def navigate(self, filepath: str, line: int) -> None:
        raise ProviderUnavailableError()
