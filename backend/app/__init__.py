"""
Neighborhood Hub Backend — Application Package
==============================================

What: The `app` package behind `uvicorn app.main:app`.
Why:  Groups the HTTP layer, the onboarding and map services, and persistence.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← auth, onboarding, map, health
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← wizard, profile upserts, Mapbox
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Google handles sign-in, PostgreSQL stores the rows, and Mapbox does the
    geocoding and map rendering. This package only sequences calls to them.
"""

__version__ = "1.0.0"
