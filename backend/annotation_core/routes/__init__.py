# Routes package init
"""
Annotation Core - API Routes Package
=====================================

Route Inventory:
    - annotations.py: POST /api/annotations/process  (validate + filter a batch)
    - analyze.py:     POST /api/analyze              (provider call + processing)
    - health.py:      GET  /health                   (status + circuit breaker)

Routes are thin: they unpack the request, call a service, and return its
model. Errors propagate to the global handlers registered in main.py.
"""
