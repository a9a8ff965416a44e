"""Stellar swap backend: cached reads, pricing and transaction lifecycle for a Soroban AMM pool."""

__version__ = "0.1.0"
