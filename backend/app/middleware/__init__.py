# Middleware package init
"""
Clipture Backend — Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [CORS] → [Request ID] → [Logging] → [Rate Limit] → [Timeout] → Route Handler

    1. CORS outermost: even rejected requests carry CORS headers
    2. Request ID: correlation ID available to everything below
    3. Logging: sees the final status, including 429 and 504 responses
    4. Rate Limit: rejects abusive clients before the handler runs
    5. Timeout: bounds only the handler itself
"""
