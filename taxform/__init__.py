"""Taxform API - sales-tax filing backend for cigar vendors.

The service keeps the ledger of statutory tax rates and cost multipliers
that vendors' periodic filings are computed with, and exposes it over a
bearer-token protected HTTP API.

Layers:
- **api**: FastAPI application, routers, schemas and middleware
- **core**: configuration, errors, logging, security and tracing
- **domain**: the tax rate ledger and its invariants
- **infrastructure**: async PostgreSQL access through SQLAlchemy
"""
