import os
from dotenv import load_dotenv

load_dotenv()

COUNTRY_API_URL = os.getenv(
    "COUNTRY_API_URL",
    "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies",
)
EXCHANGE_RATE_API_URL = os.getenv("RATE_API_URL", "https://open.er-api.com/v6/latest/USD")
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "15"))

CACHE_DIR = os.getenv("CACHE_DIR", "cache")

DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


def resolve_database_url() -> str:
    """Pick the async database URL.

    1. DATABASE_URL if set (must already name an async driver)
    2. MYSQL_* parts, assembled into a mysql+aiomysql DSN
    3. a local SQLite file through aiosqlite
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    user = os.getenv("MYSQL_USER")
    password = os.getenv("MYSQL_PASSWORD")
    host = os.getenv("DATABASE_HOST") or os.getenv("MYSQL_HOST")
    port = os.getenv("DATABASE_PORT") or os.getenv("MYSQL_PORT")
    database = os.getenv("MYSQL_DATABASE")
    if user and password and host and database:
        port_part = f":{port}" if port else ""
        return f"mysql+aiomysql://{user}:{password}@{host}{port_part}/{database}"

    return os.getenv("SQLITE_DATABASE_URL", "sqlite+aiosqlite:///./countries.db")
