"""gas_relay - sponsors native gas for wallets that cannot pay their own fees."""

__version__ = "0.1.0"
