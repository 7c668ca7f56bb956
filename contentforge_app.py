import logging
import os

from dashboard.ui import run_app_ui

logging.basicConfig(
    level=os.getenv("CONTENTFORGE_LOG_LEVEL", "INFO").upper(),
    format='%(levelname)s: %(message)s',
)
# httpx logs every request at INFO, including the Gemini key in the query string
logging.getLogger("httpx").setLevel(logging.WARNING)


def run_app():
    run_app_ui()


if __name__ == "__main__":
    run_app()
