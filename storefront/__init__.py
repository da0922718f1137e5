"""Storefront backend: cart pricing, checkout and payment reconciliation."""

__version__ = "0.1.0"
