import os

# The app module builds its engine at import; keep tests off the MySQL default.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
