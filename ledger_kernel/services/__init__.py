"""Kernel services: account registry, reference allocator and ledger engine."""

from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_engine import LedgerEngine
from ledger_kernel.services.reference_allocator import ReferenceAllocator

__all__ = [
    "AccountRegistry",
    "BaseService",
    "LedgerEngine",
    "ReferenceAllocator",
]
