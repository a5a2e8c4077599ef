"""HTTP surface: FastAPI router, request/response schemas and middleware."""
