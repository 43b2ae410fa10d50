"""
Questline Test Suite
====================

Test Organization
-----------------
- tests/unit/          : Pure components and core infrastructure (no I/O)
- tests/service/       : WeeklyQuestService and XPLedgerService on SQLite
- tests/api/           : FastAPI routes and error mapping via TestClient
- tests/integration/   : PostgreSQL and Redis via testcontainers (-m integration)

Use pytest markers to select suites, e.g. `pytest -m "unit or service"`.
"""
