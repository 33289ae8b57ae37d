"""
Services Layer

Bracket logic that:
- Accepts domain inputs (IDs, sessions, plain records)
- Returns domain outputs (models, dataclasses)
- Does NOT depend on HTTP request/response objects
- Raises dojo_brackets.services.errors exceptions; routes map them to HTTP
"""
