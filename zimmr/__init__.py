"""
ZIMMR Backend — Application Package Initializer
================================================

What: Marks the `zimmr` directory as a Python package.
Why:  Enables module imports like `from zimmr.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend follows a layered architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, auth dependencies
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Approval workflow, invoicing, time tracking
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Side effects (email, PDF rendering, document storage) live in their own
    services and are called by the business services or scheduled as
    background tasks by the routes.
"""

__version__ = "1.0.0"
