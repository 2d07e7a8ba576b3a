"""
Learning presentation pipeline.

Design intent:
- Build one prompt per note and call the text model exactly once.
- Fail closed on malformed model output; never persist partial payloads.
- Sanitize mind-map labels so the downstream mermaid parser always accepts them.
"""
