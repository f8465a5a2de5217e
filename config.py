import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets. SECRET_KEY also keys the stored code digests, so rotating it
    # invalidates every outstanding code.
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as oncepass.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "oncepass.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Create tables at startup (dev); use `flask db upgrade` elsewhere
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "oncepass_session"

    # 8 hours session lifetime 
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes 
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Session/cookie security defaults 
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Attendance codes: teachers pick 1-60 minutes
    ATTENDANCE_DEFAULT_TTL_MINUTES = int(os.getenv("ATTENDANCE_DEFAULT_TTL_MINUTES", "10"))

    # Email login codes (1-10 minutes)
    OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", "10"))

    # Secret collisions retried this many times before giving up
    CREDENTIAL_ISSUE_MAX_ATTEMPTS = int(os.getenv("CREDENTIAL_ISSUE_MAX_ATTEMPTS", "5"))

    # Brute-force protection on code verification. MAX_OTP_ATTEMPTS bounds
    # wrong guesses per email + ip and per issued code; the account-wide
    # bound applies across all clients.
    MAX_OTP_ATTEMPTS = int(os.getenv("MAX_OTP_ATTEMPTS", "5"))
    MAX_OTP_ACCOUNT_ATTEMPTS = int(os.getenv("MAX_OTP_ACCOUNT_ATTEMPTS", "10"))
    LOCKOUT_MINUTES = int(os.getenv("LOCKOUT_MINUTES", "10"))

    # Rate limit for the code request endpoint
    OTP_RATE_WINDOW_SECONDS = 60      # window size
    OTP_RATE_MAX_REQUESTS = 5         # max code requests per IP per window
    OTP_RATE_MAX_PER_EMAIL = 3        # max code requests per email per window

    # Number of reverse proxies whose X-Forwarded-For is trusted (0: none)
    TRUSTED_PROXY_HOPS = int(os.getenv("TRUSTED_PROXY_HOPS", "0"))

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    SMTP_TIMEOUT_SECONDS = int(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))

    # Basic app settings
    DEBUG = False
