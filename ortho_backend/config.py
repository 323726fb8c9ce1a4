"""
Orthodontic Practice Backend - Configuration
Environment variables and settings
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(BASE_DIR / '.env')

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Practice Database (Postgres)
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "orthodontic_app")
DB_USER = os.getenv("DB_USER", "ortho_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

# Legacy Booking System (MySQL)
MYSQL_HOST = os.getenv("MYSQL_HOST", "localhost")
MYSQL_PORT = os.getenv("MYSQL_PORT", "3306")
MYSQL_USER = os.getenv("MYSQL_USER", "root")
MYSQL_PASSWORD = os.getenv("MYSQL_PASSWORD", "")
MYSQL_DATABASE = os.getenv("MYSQL_DATABASE", "dental_booking")

LEGACY_DATABASE_URL = os.getenv(
    "LEGACY_DATABASE_URL",
    f"mysql+pymysql://{MYSQL_USER}:{MYSQL_PASSWORD}@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DATABASE}?charset=utf8mb4"
)

# Minutes between automatic booking syncs (0 = manual only)
SYNC_INTERVAL_MINUTES = int(os.getenv("SYNC_INTERVAL_MINUTES", "0"))
SYNC_SYSTEM_USER_EMAIL = os.getenv("SYNC_SYSTEM_USER_EMAIL", "")

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
DEBUG = os.getenv("DEBUG", "True").lower() == "true"
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]

# Authentication
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-dev-secret")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "480"))

# Cloudinary
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "orthodontic-app")

# Photo Upload Settings
MAX_PHOTO_SIZE = int(os.getenv("MAX_PHOTO_SIZE", str(5 * 1024 * 1024)))  # 5MB
MAX_PHOTOS_PER_UPLOAD = int(os.getenv("MAX_PHOTOS_PER_UPLOAD", "10"))
ALLOWED_IMAGE_TYPES = {
    "image/jpeg", "image/jpg", "image/png", "image/gif",
    "image/webp", "image/bmp", "image/tiff",
}

# Billing & Receipts
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "EUR")
DEFAULT_VAT_RATE = float(os.getenv("DEFAULT_VAT_RATE", "24"))
RECEIPTS_DIR = os.getenv("RECEIPTS_DIR", str(BASE_DIR / "receipts"))

CLINIC_NAME = os.getenv("CLINIC_NAME", "Orthodontic Clinic")
CLINIC_ADDRESS = os.getenv("CLINIC_ADDRESS", "")
CLINIC_PHONE = os.getenv("CLINIC_PHONE", "")
CLINIC_EMAIL = os.getenv("CLINIC_EMAIL", "")
CLINIC_VAT_NUMBER = os.getenv("CLINIC_VAT_NUMBER", "")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "logs/orthodontic_app.log")
