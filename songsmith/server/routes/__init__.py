"""
Songsmith Server Routes Package.

Contains FastAPI route handlers for:
- Health check (/api/health)
- Lyrics runs (/api/run, /api/run/stream)
- Approvals (/api/approval)
- Melodies (/api/agents/melody/stream, /api/melodies)
- Songs (/api/songs)
"""
