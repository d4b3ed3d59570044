"""Protocol interfaces for the gas_relay components."""

from gas_relay.interfaces.chain import ChainClient
from gas_relay.interfaces.signer import Signer
from gas_relay.interfaces.store import RateLimitStore, SponsorshipLedger

__all__ = ["ChainClient", "Signer", "RateLimitStore", "SponsorshipLedger"]
