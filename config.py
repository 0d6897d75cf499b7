from dotenv import load_dotenv
import os

# Load environment variables
load_dotenv()

# Database credentials, used when DATABASE_URL is not set
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")
DB_NAME = os.getenv("DB_NAME", "fee_ledger_db")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

# Receipt numbering
FEES_RECEIPT_PREFIX = os.getenv("FEES_RECEIPT_PREFIX", "RCP")
FEES_RECEIPT_PADDING = int(os.getenv("FEES_RECEIPT_PADDING", "6"))

# Bounded retry for conflicting transactions
FEES_TX_MAX_ATTEMPTS = int(os.getenv("FEES_TX_MAX_ATTEMPTS", "3"))
FEES_TX_BACKOFF_SECONDS = float(os.getenv("FEES_TX_BACKOFF_SECONDS", "0.05"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
