"""Token ledger state layout, address and identifier encodings, and a JSON-RPC query service and client."""

__version__ = "0.0.1"