"""
SpeedLearning backend package.

Design intent:
- Keep the library (books/sections/notes) and presentation history in one
  document-backed store with serialized writes.
- Treat model output as untrusted text until it is parsed, validated and sanitized.
"""
