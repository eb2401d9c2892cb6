"""Lot Ledger: tax-lot cost-basis accounting for brokerage accounts."""

__version__ = "0.1.0"
