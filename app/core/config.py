import os
from dotenv import load_dotenv
load_dotenv()

class Settings:
    APP_NAME = os.getenv("APP_NAME", "Rent Ledger")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DATABASE = os.getenv("MONGO_DATABASE", "rent_ledger")
    MONGO_MAX_POOL_SIZE = int(os.getenv("MONGO_MAX_POOL_SIZE", "100"))
    MONGO_MIN_POOL_SIZE = int(os.getenv("MONGO_MIN_POOL_SIZE", "10"))
    MONGO_SERVER_TIMEOUT_MS = int(os.getenv("MONGO_SERVER_TIMEOUT_MS", "5000"))
    MONGO_CONNECT_TIMEOUT_MS = int(os.getenv("MONGO_CONNECT_TIMEOUT_MS", "5000"))
    MONGO_SOCKET_TIMEOUT_MS = int(os.getenv("MONGO_SOCKET_TIMEOUT_MS", "20000"))

    LEDGER_MAX_RETRIES = int(os.getenv("LEDGER_MAX_RETRIES", "3"))
    RECONCILE_SCOPE = [s.strip() for s in os.getenv("RECONCILE_SCOPE", "Rent").split(",") if s.strip()]
    CURRENCY = os.getenv("CURRENCY", "Ksh")

    SMS_API_URL = os.getenv("SMS_API_URL", "https://comms.umeskiasoftwares.com/api/v1/sms/send")
    SMS_API_KEY = os.getenv("SMS_API_KEY", None)
    SMS_APP_ID = os.getenv("SMS_APP_ID", None)
    SMS_SENDER_ID = os.getenv("SMS_SENDER_ID", "UMS_SMS")

    SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    FROM_EMAIL = os.getenv("FROM_EMAIL", "noreply@example.com")
    FROM_NAME = os.getenv("FROM_NAME", "Rent Ledger")

settings = Settings()
