"""Claimant identity."""

from certikas.identity.directory import ClaimantRecord, InMemoryClaimantDirectory
from certikas.identity.port import Claimant, ClaimantPort
from certikas.identity.wallet import WalletNotConnected, WalletProvider, WalletSession

__all__ = [
    "Claimant",
    "ClaimantPort",
    "ClaimantRecord",
    "InMemoryClaimantDirectory",
    "WalletNotConnected",
    "WalletProvider",
    "WalletSession",
]
