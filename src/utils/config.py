# runtime configuration, read once from the environment (and .env if present)
import os

from dotenv import load_dotenv

load_dotenv()

DB_PATH = os.getenv("GKP_DB_PATH", "data/db.sqlite")
STORAGE_PATH = os.getenv("GKP_STORAGE_PATH", "data/local_storage.json")

# used for the WhatsApp handoff when site settings carry no number
WHATSAPP_NUMBER = os.getenv("GKP_WHATSAPP_NUMBER", "918610153961")

DEBUG = bool(os.getenv("DEBUG"))
