"""
Convo Backend — Application Package Initializer
================================================

What: Marks the `convo` directory as a Python package.
Who:  Used by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend is layered the same way top to bottom:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Auth, per-entity CRUD rules
    ├─────────────────────────────────────┤
    │   Core (Mapper, Transaction, Codecs)│  ← Multi-table objects
    ├─────────────────────────────────────┤
    │        Store (Record Tables)        │  ← One session per primitive
    └─────────────────────────────────────┘

    The store deliberately offers only single-record primitives (read, create,
    update, delete) that commit on their own. Anything spanning more than one
    record goes through the mapper, which compensates on failure.
"""

__version__ = "1.0.0"
