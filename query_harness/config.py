import os
from dotenv import load_dotenv

load_dotenv()

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "plp_bookstore")
COLLECTION_NAME = os.getenv("COLLECTION_NAME", "books")

# ---- Timeouts ----
SERVER_SELECTION_TIMEOUT_MS = int(os.getenv("SERVER_SELECTION_TIMEOUT_MS", "5000"))

# Empty means operations are not bounded unless the caller passes a timeout.
_op_timeout = os.getenv("OPERATION_TIMEOUT_MS", "").strip()
OPERATION_TIMEOUT_MS = int(_op_timeout) if _op_timeout else None

# ---- Concurrent mode ----
MAX_WORKERS = int(os.getenv("MAX_WORKERS", "4"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
