from dotenv import load_dotenv
import os

# Load variables from .env
load_dotenv()

# ----------------------
# Global settings
# ----------------------
DB_HOST = os.getenv("DB_HOST")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME")
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")

DATABASE_URL = os.getenv("DATABASE_URL") or f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"

COGNITO_USER_POOL_ID = os.getenv("COGNITO_USER_POOL_ID")
COGNITO_CLIENT_ID = os.getenv("COGNITO_CLIENT_ID")
AWS_REGION = os.getenv("AWS_REGION", "ap-southeast-2")

# Suspension policy
BILLING_GRACE_PERIOD_DAYS = int(os.getenv("BILLING_GRACE_PERIOD_DAYS", "60"))
BILLING_MAX_OVERDUE_DAYS = int(os.getenv("BILLING_MAX_OVERDUE_DAYS", "90"))
BILLING_AUTO_SUSPEND = os.getenv("BILLING_AUTO_SUSPEND", "true").lower() in ("1", "true", "yes")

# ----------------------
# Config class (for Flask)
# ----------------------
class Config:
    DATABASE_URL = DATABASE_URL
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    COGNITO_USER_POOL_ID = COGNITO_USER_POOL_ID
    COGNITO_CLIENT_ID = COGNITO_CLIENT_ID
    AWS_REGION = AWS_REGION
    BILLING_GRACE_PERIOD_DAYS = BILLING_GRACE_PERIOD_DAYS
    BILLING_MAX_OVERDUE_DAYS = BILLING_MAX_OVERDUE_DAYS
    BILLING_AUTO_SUSPEND = BILLING_AUTO_SUSPEND
