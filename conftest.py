"""Global pytest configuration."""

import os

# Set before any gateway import so the cached settings pick these up
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("GRPC_ENABLED", "false")
