"""
Blog API Backend: Application Package
=====================================

Bootstrap layer of a small HTTP API backed by MongoDB.

    ┌─────────────────────────────────────┐
    │   server.py   process lifecycle     │  connect → serve → shut down
    ├─────────────────────────────────────┤
    │   main.py     app factory           │  middleware chain + routes
    ├─────────────────────────────────────┤
    │   middleware/ cross-cutting checks  │  CORS, parsing, headers, limits
    ├─────────────────────────────────────┤
    │   database.py connection lifecycle  │  one motor client per process
    ├─────────────────────────────────────┤
    │   config.py   immutable settings    │  loaded once from the env
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
