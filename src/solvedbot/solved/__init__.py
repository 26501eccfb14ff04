"""Solved-post lifecycle core.

Self-contained modules:
- models (records, directives, payload validation)
- policy (pure removal decision)
- scheduler + executor (deferred, guard-checked removal)
- report (stats rendering)
- service (entry points for platform events)

Platform access goes through the protocols in `interfaces`.
"""
