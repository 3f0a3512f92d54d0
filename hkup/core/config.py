import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hkup.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# ✅ Paystack
PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY")
PAYSTACK_PUBLIC_KEY = os.getenv("PAYSTACK_PUBLIC_KEY")
PAYSTACK_BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
PAYSTACK_TIMEOUT_SECONDS = float(os.getenv("PAYSTACK_TIMEOUT_SECONDS", "20"))

# ✅ URLs
BASE_URL = os.getenv("BASE_URL", "http://localhost:5000").rstrip("/")
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000").rstrip("/")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ✅ Reconciliation
VERIFY_MAX_ATTEMPTS = int(os.getenv("VERIFY_MAX_ATTEMPTS", "3"))
VERIFY_BACKOFF_SECONDS = float(os.getenv("VERIFY_BACKOFF_SECONDS", "0.5"))
VERIFY_RATE_LIMIT = int(os.getenv("VERIFY_RATE_LIMIT", "20"))
VERIFY_RATE_WINDOW_SECONDS = int(os.getenv("VERIFY_RATE_WINDOW_SECONDS", "60"))
PENDING_TTL_HOURS = int(os.getenv("PENDING_TTL_HOURS", "24"))
