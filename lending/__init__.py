"""Lending Library - Core Application Package

This package contains the catalog and loan modules including:
- Configuration (config.py)
- Database layer and units of work (database.py)
- Entities (book.py, loan.py) and view projections (views.py)
- Result values returned to callers (results.py)
- ISBN and request validation (validators.py)
- Stores over the database (catalog_store.py, loan_store.py, user_store.py)
- Catalog, loan and admin services (services/)
- API endpoints (api.py) and CLI interface (main.py)
"""
