"""Application configuration."""

import os
from pathlib import Path

# Base directories
HOME_DIR = Path(os.getenv("VGEN_HOME", Path.home() / ".config" / "video-gen"))
DATABASE_PATH = HOME_DIR / "video-gen.db"
DEFAULT_OUTPUT_DIR = Path(os.getenv("VGEN_OUTPUT_DIR", Path.home() / "Desktop"))

# Remote API
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
BASE_URL = os.getenv("VGEN_BASE_URL", "https://api.openai.com/v1")
VIDEOS_ENDPOINT = "/videos"
REQUEST_TIMEOUT = float(os.getenv("VGEN_REQUEST_TIMEOUT", "120"))  # seconds

# Server settings (interactive session surface)
HOST = os.getenv("VGEN_HOST", "127.0.0.1")
PORT = int(os.getenv("VGEN_PORT", "8000"))

# Request parameters
MAX_PROMPT_LENGTH = 500
MODELS = ("sora-2", "sora-2-pro")
MODEL_ALIASES = {"sora": "sora-2", "sora-pro": "sora-2-pro"}
DURATIONS = (4, 8, 12)  # seconds
SIZES = ("1280x720", "720x1280", "1792x1024", "1024x1792")
DEFAULT_MODEL = "sora-2"
DEFAULT_DURATION = 4
DEFAULT_SIZE = "1280x720"

# Submission retry settings
SUBMIT_MAX_ATTEMPTS = 3  # waits of 2s, 4s before attempts 2 and 3

# Polling settings
POLL_MAX_ATTEMPTS = 200
POLL_FAST_INTERVAL = 10  # seconds, during the first POLL_FAST_WINDOW or at 100%
POLL_SLOW_INTERVAL = 30  # seconds
POLL_FAST_WINDOW = 120  # seconds

# Download retry settings
DOWNLOAD_MAX_ATTEMPTS = 12
DOWNLOAD_RETRY_INTERVAL = 10  # seconds – 12 attempts ≈ 2 minutes

# Diagnostics
TRACE_CAPACITY = 50
TICK_INTERVAL = 1.0  # seconds between elapsed-time ticks (interactive mode)
RECENT_VIDEOS_LIMIT = 10
