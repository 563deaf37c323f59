"""
Ultima - Main entry point for the application.
"""

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import __version__
from .config import Config
from .constants import (
    DEFAULT_DATA_DIR,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILENAME,
    LOG_FORMAT,
    LOG_MAX_BYTES,
    LOGS_DIR,
)
from .crypto import CryptoConfig, EncLevel
from .errors import UltimaError
from .file_transfer import FileSink
from .session import SessionOrchestrator
from .strings import get_strings
from .ui import UltimaApp
from .webrtc import aiortc_factory

logger = logging.getLogger(__name__)


def setup_logging(data_dir: Path, level: str, file_logging: bool) -> None:
    """Send log records to a rotating file; the terminal belongs to the UI."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not file_logging:
        root.addHandler(logging.NullHandler())
        return

    logs_dir = data_dir / LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        logs_dir / LOG_FILENAME, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    root.addHandler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ultima - Serverless peer-to-peer encrypted chat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ultima                              # Standard protection, default data directory
  ultima --level personal --passphrase "correct horse"
  ultima --mic                        # Offer a voice channel as well
        """,
    )

    parser.add_argument("--version", action="version", version=f"Ultima {__version__}")

    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help=f"Data directory for configuration, logs and downloads (default: {DEFAULT_DATA_DIR})",
    )

    parser.add_argument("--config", type=str, default=None, help="Path to a TOML configuration file")

    parser.add_argument(
        "--level",
        choices=[level.value for level in EncLevel],
        default=None,
        help="Handshake protection level for connection codes",
    )

    parser.add_argument("--passphrase", type=str, default=None, help="Passphrase for personal level")

    parser.add_argument("--mic", action="store_true", help="Attach the microphone to the session")

    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser


def main():
    """Main entry point for Ultima application."""
    args = build_parser().parse_args()

    try:
        config = Config(
            config_path=Path(args.config).expanduser() if args.config else None,
            data_dir=Path(args.data_dir).expanduser().resolve() if args.data_dir else None,
        )
        if args.level:
            config.set("security", "enc_level", args.level)
        if args.passphrase:
            config.set("security", "passphrase", args.passphrase)
        if args.mic:
            config.set("security", "use_mic", True)
        crypto_config: CryptoConfig = config.crypto_config()
    except UltimaError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    config.data_dir.mkdir(parents=True, exist_ok=True)
    level = "DEBUG" if args.debug else config.get("logging", "level", "INFO")
    setup_logging(config.data_dir, level, bool(config.get("logging", "file_logging", True)))

    strings = get_strings(config.get("ui", "language", "en"))
    orchestrator = SessionOrchestrator(
        transport_factory=aiortc_factory(config.stun_servers()),
        crypto_config=crypto_config,
        file_sink=FileSink(config.downloads_dir()),
        gather_timeout=config.gather_timeout(),
        chunk_size=int(config.get("transfer", "chunk_size")),
        strings=strings,
    )

    logger.info(f"Starting Ultima {__version__} ({crypto_config.describe()})")
    app = UltimaApp(orchestrator, strings, theme_name=config.get("ui", "theme", "dark"))
    app.run()


if __name__ == "__main__":
    main()
