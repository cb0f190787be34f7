"""
Main entry point for tunebox.

Initializes all components and starts the server.
"""

import argparse
import logging
import os

import uvicorn

from .config_manager import ConfigManager
from .database import Database
from .library import LibraryManager
from .storage import FileStorage
from .user import UserManager
from .web.server import create_app

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3003


class TuneboxServer:
    """Main server class that orchestrates all components."""

    def __init__(self, db_path=None):
        """
        Initialize all components.

        Args:
            db_path: SQLite database path (defaults to $TUNEBOX_DB_PATH or ~/.tunebox/tunebox.db)
        """
        logger.info("Initializing tunebox server...")

        self.database = Database(db_path)
        self.config_manager = ConfigManager(self.database)
        self.user_manager = UserManager(self.database)
        self.file_storage = FileStorage(self.config_manager)
        self.library_manager = LibraryManager(
            self.database,
            self.file_storage,
            unknown_artist=self.config_manager.get("unknown_artist"),
        )

        self.web_app = create_app(
            self.library_manager,
            self.config_manager,
            self.user_manager,
            self.file_storage,
        )

        self.uvicorn_server = None

        logger.info("tunebox server initialized")

    def run(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT):
        """Start the server (blocking)."""
        logger.info("=" * 60)
        logger.info("tunebox is running!")
        logger.info("API: http://%s:%s/api", host, port)
        logger.info("Uploads: %s", self.file_storage.base_directory)
        logger.info("=" * 60)

        config = uvicorn.Config(self.web_app, host=host, port=port, log_level="info")
        self.uvicorn_server = uvicorn.Server(config)
        self.uvicorn_server.run()

    def stop(self):
        """Stop all components."""
        logger.info("Stopping tunebox server...")

        if self.uvicorn_server:
            self.uvicorn_server.should_exit = True

        if self.database:
            self.database.close()

        logger.info("tunebox server stopped")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="tunebox - Personal music library server")
    parser.add_argument("--db", help="Path to the SQLite database file")
    parser.add_argument("--host", default=os.environ.get("TUNEBOX_HOST", DEFAULT_HOST))
    parser.add_argument(
        "--port", type=int, default=int(os.environ.get("TUNEBOX_PORT", DEFAULT_PORT))
    )
    parser.add_argument(
        "--reset-db",
        action="store_true",
        help="Delete all songs, playlists and favorites, then exit",
    )
    args = parser.parse_args()

    if args.reset_db:
        Database(args.db).reset()
        return

    server = TuneboxServer(db_path=args.db)
    try:
        server.run(host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()


if __name__ == "__main__":
    main()
