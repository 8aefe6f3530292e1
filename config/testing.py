import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "school_requests_test"),
}

DEBUG = False
TESTING = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")

STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")

# memory backend only: students and guardians loaded into the in-memory directory
DIRECTORY_SEED_FILE = os.getenv("DIRECTORY_SEED_FILE", "database/seed_directory.json")
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

MAX_GUARDIANS_PER_STUDENT = 5
GUARDIAN_LINK_TTL_HOURS = 24
MINIMUM_AMOUNT_FLOOR = "100"
MINIMUM_AMOUNT_RATIO = "0.10"
MAX_PAYMENT_AMOUNT = "1000000"
CONFLICT_RETRIES = 3
