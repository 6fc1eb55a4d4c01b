import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
JWT_ALG = "HS256"
TOKEN_EXPIRE_MIN = int(os.getenv("TOKEN_EXPIRE_MIN", "10080"))  # 7 days

# Payment gateway
RAZORPAY_API_KEY = os.getenv("RAZORPAY_API_KEY", "")
RAZORPAY_API_SECRET = os.getenv("RAZORPAY_API_SECRET", "")
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3001")
API_URL = os.getenv("API_URL", "http://localhost:8000")

# Assistant
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")

# Seed
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@shopkart.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))

# Store rules
STORE_NAME = "ShopKart"
CURRENCY = "INR"
FREE_SHIPPING_THRESHOLD = 499
SHIPPING_CHARGE = 40
FALLBACK_PHONE = "9876543210"
PAYMENT_DESCRIPTION_MAX = 255
FEATURED_LIMIT = 8
DEFAULT_PAGE_SIZE = 12
