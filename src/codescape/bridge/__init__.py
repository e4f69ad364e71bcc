"""Editor bridge: JSON-RPC over stdio to the editor plugin."""

from codescape.bridge.server import EditorBridge

__all__ = ["EditorBridge"]
