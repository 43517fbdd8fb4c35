"""
Configuration for the assistant hub service.
"""
import os

from dotenv import load_dotenv

load_dotenv()

# OpenAI API
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
OPENAI_ORG_ID = os.environ.get("OPENAI_ORG_ID", "")

# Gemini token counting
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
GEMINI_API_BASE = os.environ.get("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")

# API security: every request carries this value in the X-API-Key header
API_TOKEN = os.environ.get("API_TOKEN", "")

# Document store
DATA_DIR = os.environ.get("DATA_DIR", "data")
STORE_FILENAME = os.environ.get("STORE_FILENAME", "store.json")
SAVE_INTERVAL = int(os.environ.get("SAVE_INTERVAL", "5"))  # minutes

# Run lifecycle
RUN_POLL_INTERVAL = float(os.environ.get("RUN_POLL_INTERVAL", "1"))  # seconds
RUN_TIMEOUT = float(os.environ.get("RUN_TIMEOUT", "300"))  # seconds
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "30"))  # seconds

# Chat limits
MAX_PROMPT_LENGTH = int(os.environ.get("MAX_PROMPT_LENGTH", "32700"))
THREAD_TITLE_LENGTH = int(os.environ.get("THREAD_TITLE_LENGTH", "50"))

# Models
RESTRICTED_MODEL = os.environ.get("RESTRICTED_MODEL", "o3-mini")
DEFAULT_MODEL = os.environ.get("DEFAULT_MODEL", "gpt-4-1106-preview")

# Sandboxed function scripts
SCRIPT_MAX_STEPS = int(os.environ.get("SCRIPT_MAX_STEPS", "10000"))
SCRIPT_MAX_VALUE_SIZE = int(os.environ.get("SCRIPT_MAX_VALUE_SIZE", "100000"))  # items, characters or int bytes

# Server
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
