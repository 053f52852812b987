import os
from dotenv import load_dotenv

load_dotenv()

# Nansen API
NANSEN_API_KEY = os.getenv("NANSEN_API_KEY", "")
NANSEN_BASE_URL = os.getenv("NANSEN_BASE_URL", "https://api.nansen.ai/api/v1")

# Signal log location (JSON array). Empty = trader_config signal_log.path
SIGNAL_LOG_PATH = os.getenv("SIGNAL_LOG_PATH", "")

# conservative | standard | aggressive | burst. Empty = trader_config rate_limit.preset
RATE_LIMIT_PRESET = os.getenv("RATE_LIMIT_PRESET", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
