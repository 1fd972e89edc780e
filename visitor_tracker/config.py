from __future__ import annotations

import os

APP_VERSION = "1.0.0"

# "development" | "production"
APP_ENV = os.getenv("APP_ENV", "development")

SERVER_HOST = "0.0.0.0"
SERVER_PORT = int(os.getenv("PORT", "3000"))

DB_PATH = os.getenv("DB_PATH", "visitor.db")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_CONNECT_TIMEOUT = float(os.getenv("DB_CONNECT_TIMEOUT", "5"))  # seconds
DB_IDLE_TIMEOUT = float(os.getenv("DB_IDLE_TIMEOUT", "300"))      # seconds

# Empty disables the reset endpoint
ADMIN_KEY = os.getenv("ADMIN_KEY", "")

GEO_TIMEOUT_SECONDS = float(os.getenv("GEO_TIMEOUT_SECONDS", "3"))
GEO_CACHE_SIZE = 1000
IP_API_URL = "http://ip-api.com/json/{ip}?fields=status,country,regionName,city"
IPAPI_CO_URL = "https://ipapi.co/{ip}/json/"

# Stored timestamps and date buckets use this fixed offset, not the host zone
UTC_OFFSET_HOURS = int(os.getenv("UTC_OFFSET_HOURS", "8"))

TREND_DAYS = 7
TOP_IP_LIMIT = 10
RECENT_VISITS_LIMIT = 100
