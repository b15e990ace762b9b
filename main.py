"""
Parish Notify — Entry Point.

Single entry point: `python main.py` starts the notification scheduler.
"""

import logging

from parish_notify.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from parish_notify.app import main

if __name__ == "__main__":
    main()
