# Middleware package init
"""
Blog API Backend: Middleware Package
====================================

Cross-cutting checks applied to every request, assembled by
blog_api.main.create_app() in this request order:

    Request → [Request ID] → [Access Log] → [CORS gate] → [Body parsing]
            → [Cookie parsing] → [GZip] → [Security headers] → [Rate limit]
            → Route Handler

    1. CORS gate first among the checks: disallowed origins are rejected
       before any body is read
    2. Parsing next: malformed or oversized bodies stop here
    3. Rate limit last: only requests that passed everything cheaper
       consume a slot
"""
