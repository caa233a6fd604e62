"""
Persistence Layer.

    - db.py: SQLite connection helper
    - speakers.py: SQLite speaker library
    - profiles.py: SQLite user profiles and plan quotas
    - episodes.py: Disk archive of generated episodes
"""
