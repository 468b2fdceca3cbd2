import os

# Must be in place before campus_api.settings is first read.
os.environ.setdefault("USE_DEMO_STORE", "true")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("DB_RETRY_INITIAL_DELAY_MS", "1")
