"""Lending Library - Services Package

This package contains the service modules the API and CLI call into:
- Catalog service (create, search, suggestions)
- Loan service (borrow/return, availability, user history)
- Admin service (user loan statistics)
"""
