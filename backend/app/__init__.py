"""
Clipture Backend — Application Package Initializer
==================================================

What: Marks the `app` directory as a Python package.
Why:  Enables module imports like `from app.config import get_settings`.
Who:  Used implicitly by Python's import system and explicitly by pytest and uvicorn.

Architecture Note:
    The backend is a thin skeleton for the Clipture screen capture and
    annotation product. No product logic lives here yet.

    ┌─────────────────────────────────────┐
    │     Server (signals, shutdown)      │  ← process lifecycle
    ├─────────────────────────────────────┤
    │    FastAPI app (middleware, routes) │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │      Database (bootstrap, ping)     │  ← async SQLAlchemy engine
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"

SERVICE_NAME = "clipture-backend"
