"""Path utilities for Scout AI."""
import os

SCOUTAI_DIR = ".scoutai"
LOGS_DIR = "logs"
DB_FILENAME = "preferences.db"


def get_data_dir() -> str:
    path = os.getenv("SCOUTAI_HOME") or os.path.join(os.path.expanduser("~"), SCOUTAI_DIR)
    os.makedirs(path, exist_ok=True)
    return path


def get_db_path() -> str:
    return os.path.join(get_data_dir(), DB_FILENAME)


def get_log_dir() -> str:
    path = os.path.join(get_data_dir(), LOGS_DIR)
    os.makedirs(path, exist_ok=True)
    return path
