"""Client configuration, loaded from ``.env`` and the environment."""

import os

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))

load_dotenv(os.path.join(basedir, ".env"))


class Config:
    # Persistence service
    API_BASE_URL: str = os.getenv("API_BASE_URL", "http://localhost:5000/api").rstrip("/")
    API_TIMEOUT: float = float(os.getenv("API_TIMEOUT", "30"))

    # Failed ledger appends are kept here until replayed; empty keeps them in memory
    OUTBOX_PATH: str = os.getenv("OUTBOX_PATH", os.path.join(basedir, "instance", "outbox.json"))
