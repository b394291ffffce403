from __future__ import annotations

import os
import sys
import tempfile
import uuid
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

TEST_DB_PATH = Path(tempfile.gettempdir()) / f"localai_gateway_test_{uuid.uuid4().hex}.db"
TEST_JWT_SECRET = "test-secret-for-the-gateway-suite"

os.environ.setdefault("DATABASE_URL", f"sqlite:///{TEST_DB_PATH.as_posix()}")
os.environ.setdefault("RAG_STORE_BACKEND", "sqlite")
os.environ.setdefault("JWT_SECRET", TEST_JWT_SECRET)
os.environ.setdefault("LOCALAI_MODEL", "llama3")
os.environ.setdefault("APP_ENV", "test")


def pytest_sessionfinish(session, exitstatus):
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()
