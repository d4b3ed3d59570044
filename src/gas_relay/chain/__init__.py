"""EVM JSON-RPC access and unit conversion."""
