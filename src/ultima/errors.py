"""
Ultima - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
the Ultima application. Each error has a unique code for logging and debugging.

None of these errors is fatal to the process: the orchestrator turns every
one of them into a rejected paste, a system notice, or a return to IDLE.

Author: Ultima contributors
Version: 1.0.0
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all Ultima error codes."""

    # General Errors (E001-E099)
    E001_UNKNOWN_ERROR = "E001"
    E002_INVALID_ARGUMENT = "E002"
    E003_FILE_NOT_FOUND = "E003"

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E101_ENCRYPTION_FAILED = "E101"
    E102_DECRYPTION_FAILED = "E102"

    # Signaling Errors (E200-E299)
    E200_SIGNALING_ERROR = "E200"
    E201_MALFORMED_DESCRIPTOR = "E201"
    E202_NEGOTIATION_STALLED = "E202"
    E203_UNEXPECTED_DESCRIPTOR = "E203"

    # Network Errors (E300-E399)
    E300_NETWORK_ERROR = "E300"
    E301_CHANNEL_NOT_OPEN = "E301"
    E302_CHANNEL_CLOSED = "E302"

    # File Transfer Errors (E600-E699)
    E600_FILE_TRANSFER_ERROR = "E600"
    E601_FILE_READ_FAILED = "E601"
    E602_FILE_STORE_FAILED = "E602"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E703_INVALID_CONFIG = "E703"
    E704_CONFIG_PARSE_ERROR = "E704"

    # Media Errors (E900-E999)
    E900_MEDIA_ERROR = "E900"
    E901_MICROPHONE_DENIED = "E901"


class UltimaError(Exception):
    """Base exception class for all Ultima errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize an Ultima error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization.

        Returns:
            Dictionary containing error information
        """
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(UltimaError):
    """Exception raised for signaling cipher failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_ERROR,
        message: str = "Cryptographic operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class DecryptionFailed(CryptoError):
    """Wrong passphrase, wrong level, or a corrupted pasted code.

    The three causes are reported identically on purpose.
    """

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.E102_DECRYPTION_FAILED, "Wrong password or corrupted code", details
        )


class SignalingError(UltimaError):
    """Exception raised for offer/answer exchange failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E200_SIGNALING_ERROR,
        message: str = "Signaling operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class MalformedDescriptor(SignalingError):
    """Pasted text decoded but is not a usable negotiation document."""

    def __init__(self, message: str = "Not a valid connection code", details=None):
        super().__init__(ErrorCode.E201_MALFORMED_DESCRIPTOR, message, details)


class NegotiationStalled(SignalingError):
    """Local path enumeration did not complete within the configured timeout."""

    def __init__(self, timeout: float):
        super().__init__(
            ErrorCode.E202_NEGOTIATION_STALLED,
            f"No usable network path found within {timeout:g}s",
            {"timeout": timeout},
        )


class NetworkError(UltimaError):
    """Exception raised for data channel failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E300_NETWORK_ERROR,
        message: str = "Network operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ChannelClosedUnexpectedly(NetworkError):
    """The transport closed the channel while the session was connected."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E302_CHANNEL_CLOSED, "Channel closed by peer", details)


class FileTransferError(UltimaError):
    """Exception raised for file transfer failures.

    This includes reading outbound files and storing received ones.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E600_FILE_TRANSFER_ERROR,
        message: str = "File transfer operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(UltimaError):
    """Exception raised for configuration failures.

    This includes loading, parsing, and validating configuration files.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class MediaError(UltimaError):
    """Exception raised for local media capture failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E900_MEDIA_ERROR,
        message: str = "Media operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class MicrophoneDenied(MediaError):
    """Local microphone capture was refused or is unavailable."""

    def __init__(self, reason: str = ""):
        message = "Microphone access denied"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(ErrorCode.E901_MICROPHONE_DENIED, message, {"reason": reason})
