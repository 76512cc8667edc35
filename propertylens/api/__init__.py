"""HTTP surface: routes, request/response schemas, and middleware."""
