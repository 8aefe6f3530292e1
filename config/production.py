import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "school_requests"),
}

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

STORE_BACKEND = os.getenv("STORE_BACKEND", "mysql")
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

MAX_GUARDIANS_PER_STUDENT = int(os.getenv("MAX_GUARDIANS_PER_STUDENT", "5"))
GUARDIAN_LINK_TTL_HOURS = float(os.getenv("GUARDIAN_LINK_TTL_HOURS", "24"))
MINIMUM_AMOUNT_FLOOR = os.getenv("MINIMUM_AMOUNT_FLOOR", "100")
MINIMUM_AMOUNT_RATIO = os.getenv("MINIMUM_AMOUNT_RATIO", "0.10")
MAX_PAYMENT_AMOUNT = os.getenv("MAX_PAYMENT_AMOUNT", "1000000")
CONFLICT_RETRIES = int(os.getenv("CONFLICT_RETRIES", "3"))
