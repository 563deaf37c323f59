"""
Ultima - Global Constants and Configuration Values

This module defines all constants used throughout the Ultima application.
Protocol constants (salt, iteration count, nonce size, default key, frame
types) must match on both peers and are never read from configuration.

Author: Ultima contributors
Version: 1.0.0
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "Ultima"

# Signaling Cipher Constants
PASSPHRASE_SALT = b"UltimaP2PSalt_2025"
PBKDF2_ITERATIONS = 100000
KEY_SIZE = 32  # 256 bits for AES-256-GCM
NONCE_SIZE = 16  # 128-bit nonce prepended to every envelope

# Publicly known secret used by the STANDARD level (obfuscation only)
DEFAULT_SDP_KEY = "Ultima_Internal_v1_Secret"

# Path Discovery
DEFAULT_STUN_SERVERS = [
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
]
DATA_CHANNEL_LABEL = "chat"

# File Transfer Constants
FILE_CHUNK_SIZE = 16 * 1024  # 16 KiB per binary message
PROGRESS_STEP_PERCENT = 5  # emit file-progress only on multiples of this
DEFAULT_MIME_TYPE = "application/octet-stream"

# Typing Indicator (seconds)
TYPING_SEND_INTERVAL = 1.5
TYPING_DISPLAY_WINDOW = 3.0

# Close Controls (seconds)
CLOSE_HOLD_DURATION = 5.0
CLOSE_HOLD_TICK = 0.05
CLOSE_COUNTDOWN_SECONDS = 10
CLOSE_COUNTDOWN_TICK = 1.0

# State Machine
STATE_HISTORY_LIMIT = 100

# File Paths
DEFAULT_DATA_DIR = "~/.ultima"
CONFIG_FILENAME = "config.toml"
DOWNLOADS_DIR = "downloads"
LOGS_DIR = "logs"
LOG_FILENAME = "ultima.log"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5
