"""
Ledger transports.
"""

from .base import LedgerTransport
from .rpc import JsonRpcTransport
from .memory import InMemoryLedger, Contract, ContractTrap

__all__ = ["LedgerTransport", "JsonRpcTransport", "InMemoryLedger", "Contract", "ContractTrap"]
