# Routes package init
"""
Clipture Backend — API Routes Package
=======================================

Route Inventory:
    - root.py:    GET /                       (service information)
    - health.py:  GET /health, GET /db-health (probes; also under /api/v1)
    - v1.py:      /api/v1/*                   (info, probes, auth and profile placeholders)

Routes stay THIN: they build envelope responses and leave everything else
to the database handle and the global exception handlers.
"""
