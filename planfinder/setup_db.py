"""
Database and storage setup for PlanFinder.
Creates database tables and the storage directories.
"""

import sys
from pathlib import Path
from loguru import logger

from .config import Settings
from .indexing.database import DatabaseManager
from .indexing.file_store import FileStore


def setup_database(database_url: str):
    """Set up database tables."""
    logger.info(f"Setting up database: {database_url}")

    try:
        # Tables are created automatically in __init__
        db_manager = DatabaseManager(database_url)
        logger.info("Database tables created successfully")

        stats = db_manager.get_database_stats()
        logger.info(f"Database initialized with {stats.get('plans', 0)} plans")

        db_manager.close()

    except Exception as e:
        logger.error(f"Database setup failed: {e}")
        raise


def create_directories(settings: Settings):
    """Create the storage bucket and its subfolders."""
    store = FileStore(settings.storage_dir)
    for folder in ("thumbnails", "drawings", "photos"):
        path = Path(settings.storage_dir) / store.bucket / folder
        path.mkdir(exist_ok=True, parents=True)
        logger.info(f"Created directory: {path}")


def setup(settings: Settings):
    create_directories(settings)
    setup_database(settings.database_url)
    logger.info("PlanFinder setup completed successfully!")


def main(config_path: str = "config.yaml"):
    """Main setup function."""
    logger.info("Starting PlanFinder setup...")

    try:
        setup(Settings.load(config_path))
    except Exception as e:
        logger.error(f"Setup failed: {e}")
        sys.exit(1)
