import os

NASA_API_KEY = os.getenv("NASA_API_KEY", "DEMO_KEY")
NASA_BASE_URL = os.getenv("NASA_BASE_URL", "https://api.nasa.gov")
NASA_TIMEOUT = float(os.getenv("NASA_TIMEOUT", "30"))

# NeoWs rejects feed requests spanning more than this many days
MAX_FEED_SPAN_DAYS = 7
PAGE_SPAN_DAYS = int(os.getenv("PAGE_SPAN_DAYS", "7"))
FEED_HORIZON_DAYS = int(os.getenv("FEED_HORIZON_DAYS", "7"))

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./neo_dashboard.db")

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
AUTH_TIMEOUT = float(os.getenv("AUTH_TIMEOUT", "10"))

SESSION_COOKIE = os.getenv("SESSION_COOKIE", "neo_session")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SESSION_IDLE_TTL = float(os.getenv("SESSION_IDLE_TTL", str(12 * 3600)))
SESSION_MAX = int(os.getenv("SESSION_MAX", "1000"))
