"""Visualization session: request correlation, snippets and graph ownership."""

from codescape.session.correlation import PendingRequest, PendingRequests
from codescape.session.session import VisualizerSession
from codescape.session.snippets import SnippetReader

__all__ = ["PendingRequest", "PendingRequests", "SnippetReader", "VisualizerSession"]
