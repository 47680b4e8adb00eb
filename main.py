"""
Household Rotation Engine — Entry Point.

Single entry point: `python main.py` starts the periodic job runner
(rotation sweep, absence reconciliation, reminder dispatch).
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.bot.jobs import main

if __name__ == "__main__":
    main()
