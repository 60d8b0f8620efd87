import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_PATH = os.getenv("DATABASE_PATH", "medtimeline.db")

DATABASE_URL = os.getenv("DATABASE_URL", "")
DATABASE_MAX_CONNECTIONS = int(os.getenv("DATABASE_MAX_CONNECTIONS", "5"))
SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "true").lower() in ("1", "true", "yes", "on")

# Record index scoping
ADMIN_PAGE_CAP = int(os.getenv("ADMIN_PAGE_CAP", "50"))
MAX_DEPENDENTS = int(os.getenv("MAX_DEPENDENTS", "10"))
# "assigned": clinicians see patients they have attended; "unbounded": same as admin
CLINICIAN_SCOPE_POLICY = os.getenv("CLINICIAN_SCOPE_POLICY", "assigned").lower()

# Timeline fan-out
CATEGORY_TIMEOUT_SECONDS = float(os.getenv("CATEGORY_TIMEOUT_SECONDS", "5.0"))

# Display formatting
DISPLAY_DATE_FORMAT = os.getenv("DISPLAY_DATE_FORMAT", "%d/%m/%Y")
DISPLAY_TIME_FORMAT = os.getenv("DISPLAY_TIME_FORMAT", "%H:%M")
DISPLAY_DATETIME_FORMAT = os.getenv("DISPLAY_DATETIME_FORMAT", "%d/%m/%Y %H:%M")
