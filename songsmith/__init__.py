"""
Songsmith: guardrailed LLM workflows for song lyrics and melodies.

Packages:
- core: settings, trace, state store, guardrails, approval, events, LLM client, persistence
- tools: schema-validated generate / evaluate / improve tools (live or sample backend)
- agents: artifacts, creative brief, decision policy, orchestrator, workflow runtime
- services: daily request quota
- server: FastAPI HTTP + Server-Sent Events surface
"""

__version__ = "0.1.0"
