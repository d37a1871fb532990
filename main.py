#!/usr/bin/env python3
"""
YDHistory v1.0.0: maintenance entry point.
Opens the history store next to the program, applies pending migrations
and logs a health report.
"""

import sys
import logging
import traceback
from pathlib import Path
from datetime import datetime

# ── Determine project root ────────────────────────────────────────────
if getattr(sys, 'frozen', False):
    # Running inside a PyInstaller bundle
    PROJECT_ROOT = Path(sys._MEIPASS)
else:
    # Running from source
    PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ydhistory.core.constants import APP_NAME, APP_VERSION, CONFIG_PATH, LOG_DIR

# ── Logging setup (writes to ~/Library/Logs/YDHistory/) ──────────────
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = LOG_DIR / "app.log"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(LOG_FILE, encoding="utf-8"),
    ],
)
logger = logging.getLogger(APP_NAME)


def main():
    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("Project root: %s", PROJECT_ROOT)
    logger.info("Frozen: %s", getattr(sys, 'frozen', False))
    logger.info("=" * 60)

    try:
        from ydhistory.core.config import StoreConfig
        from ydhistory.core.db_sqlite import HistoryDatabase
        from ydhistory.core.diagnostics import get_diagnostics

        config = StoreConfig(CONFIG_PATH)
        with HistoryDatabase.open_default(config) as db:
            for key, value in get_diagnostics(db).items():
                logger.info("%s: %s", key, value)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        logger.critical("Fatal error: %s\n%s", error_msg, traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
