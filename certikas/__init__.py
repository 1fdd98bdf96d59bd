"""CertiKAS: ledger-anchored content certification."""

__version__ = "0.1.0"
