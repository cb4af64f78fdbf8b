"""FlowMate: credential vault and sync engine for connected productivity accounts."""

__version__ = "0.1.0"
