"""
HTTP boundary for the SpeedLearning backend.

Design intent:
- Expose thin, typed endpoints for library CRUD and presentation generation.
- Map domain failures to predictable status codes.
- Keep generation and persistence logic out of routers.
"""
