"""
ZIMMR Backend — Middleware Package
===================================

Stack (outermost first, as registered in main.py):

    RateLimitMiddleware     → 429 before any work is done
    RequestIDMiddleware     → X-Request-ID in and out, request_id_var for logs
    RequestLoggingMiddleware→ one access line per request (zimmr.access)
    GZipMiddleware          → large JSON lists (appointments, time entries)
    CORSMiddleware          → browser clients

Responses pass back through the same layers in reverse, so the access log
sees the final status and the request id header is always present.
"""
