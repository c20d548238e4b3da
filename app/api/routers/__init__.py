"""
FastAPI routers for organizing API endpoints.

Each module exposes a ``router`` that ``app.main`` registers on the application.
"""
