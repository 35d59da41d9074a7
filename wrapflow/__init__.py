"""wrapflow: client-side orchestration for wrapping, bridging and redeeming a canonical BTC token."""

__version__ = "0.1.0"
