# Middleware package init
"""
Neighborhood Hub Backend — Middleware Package
=============================================

Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

Rate limiting runs first so rejected requests cost nothing. The request id
is set before the access logger runs so every line can be correlated.
"""
