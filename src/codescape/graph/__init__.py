"""Graph model, layout and incremental merge engine."""

from codescape.graph.layout import layout
from codescape.graph.merge import MergeResult, merge_expansion
from codescape.graph.state import CodeGraph

__all__ = ["CodeGraph", "MergeResult", "layout", "merge_expansion"]
