# config.py
"""
EcoCarbon settings.

Everything that varies by deployment is read from the environment here.
"""
import logging
import os

DATABASE_URL = os.environ.get("ECOCARBON_DATABASE_URL", "sqlite:///ecocarbon.db")

LOG_LEVEL = os.environ.get("ECOCARBON_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Worker threads used when a view loads several record sets at once
FETCH_WORKERS = int(os.environ.get("ECOCARBON_FETCH_WORKERS", "4"))

BCRYPT_ROUNDS = int(os.environ.get("ECOCARBON_BCRYPT_ROUNDS", "12"))
MIN_PASSWORD_LENGTH = 6

# Optional first admin, provisioned on start-up
ADMIN_EMAIL = os.environ.get("ECOCARBON_ADMIN_EMAIL", "")
ADMIN_PASSWORD = os.environ.get("ECOCARBON_ADMIN_PASSWORD", "")
ADMIN_NAME = os.environ.get("ECOCARBON_ADMIN_NAME", "Administrator")

_logging_configured = False


def configure_logging():
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(level=LOG_LEVEL.upper(), format=LOG_FORMAT)
    _logging_configured = True
