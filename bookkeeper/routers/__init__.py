# bookkeeper/routers/__init__.py
# Router package initialization

"""
API routers for the bookkeeping application.

Each module exposes a ``router`` mounted by the route table in
``bookkeeper.main``:
- auth: registration, login and token verification
- income, expense: ledger CRUD and statistics
- dashboard, reports: aggregated views of both ledgers
- tax: reference data, calculators and calculation history
- budget: budgets and their execution tracking
- cashflow, analytics: forecasts, trends and anomaly detection
- assistant: classification, reminders, chat, smart backups and receipts
- settings: company profile, system settings, export/import and backups
"""
