"""Catalog Migrator.

Fault-tolerant migration of catalog products (with prices) from a
PostgREST-backed source store into a Stripe-compatible commerce platform.
"""

__version__ = "1.0.0"
