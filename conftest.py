# Ensure project root is on sys.path for tests, and pin test-friendly
# settings before doodleboard.config is imported anywhere.
import os
import sys

ROOT = os.path.dirname(os.path.abspath(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite://./.test_db.sqlite3")
os.environ.setdefault("UPLOAD_DIR", os.path.join(ROOT, ".test_uploads"))
