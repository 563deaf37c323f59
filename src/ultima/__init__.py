"""
Ultima - Serverless Peer-to-Peer Encrypted Chat

Two peers exchange encrypted connection codes by hand (any out-of-band
channel will do) and then talk over a direct WebRTC data channel with
text, file transfer, typing presence and optional voice.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .constants import APP_NAME, VERSION
from .crypto import CryptoConfig, EncLevel
from .errors import (
    ConfigError,
    CryptoError,
    DecryptionFailed,
    ErrorCode,
    FileTransferError,
    MalformedDescriptor,
    NetworkError,
    SignalingError,
    UltimaError,
)

__all__ = [
    "APP_NAME",
    "VERSION",
    "ConfigError",
    "CryptoConfig",
    "CryptoError",
    "DecryptionFailed",
    "EncLevel",
    "ErrorCode",
    "FileTransferError",
    "MalformedDescriptor",
    "NetworkError",
    "SignalingError",
    "UltimaError",
    "__license__",
    "__version__",
]
