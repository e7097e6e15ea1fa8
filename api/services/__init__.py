"""Service layer for the gamification engines.

Layer hierarchy:
    Callers (feedback/schedule/forum handlers, scripts)
        -> Services (rank progression, badge awarding)
        -> Repositories (Database)

Services should:
- Contain the progression and badge rules
- Orchestrate calls to repositories
- Return schema objects, not ORM rows

Services should NOT:
- Directly execute SQL queries (use repositories)
- Make a caller's primary operation fail because of a gamification error
"""
