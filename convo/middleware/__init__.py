"""
Convo Backend — Middleware Package
===================================

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    Responses travel back through the same chain, so the request id header is
    set after the handler ran and the access log sees the final status code.
"""
