"""
Blog API Backend: API Routes Package

Route Inventory:
    - health.py:  GET /            (unversioned liveness)
    - v1.py:      GET /api/v1/     (versioned group; liveness for now)

Routes stay thin: they read the request, call into a service and shape
the response. Database access goes through blog_api.database.get_database.
"""
