# Middleware package init
"""
Annotation Core - Middleware Package
=====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Request ID] → [Access Log] → [CORS] → Route Handler

    1. Request ID first, so every later log line (including provider
       orchestration logs) can be correlated through request_id_var
    2. Access log records method, path, status and duration per request

    Responses travel the chain in reverse, which is how X-Request-ID ends up
    on every response, error responses included.
"""
