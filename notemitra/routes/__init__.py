# Routes package init
"""
NoteMitra Backend — API Routes Package
========================================

Route Inventory:
    - auth.py:         /api/auth/register, /login, /me, /profile
    - notes.py:        /api/notes (upload, CRUD, votes, bookmarks, download, report)
    - files.py:        /api/files/{file_id}     (inline blob stream)
    - leaderboard.py:  /api/leaderboard
    - admin.py:        /api/admin (report moderation, suspensions)
    - health.py:       /health

Routes stay thin: parse the request, call one service, shape the response.
"""
