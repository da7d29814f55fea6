"""Shared error codes and user-facing messages."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
DEVICE_BUSY = "DEVICE_BUSY"
UNSUPPORTED_ENVIRONMENT = "UNSUPPORTED_ENVIRONMENT"
TOKEN_REJECTED = "TOKEN_REJECTED"
NETWORK_ERROR = "NETWORK_ERROR"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone permission is required in system settings.",
    DEVICE_NOT_FOUND: "No microphone input device was found.",
    DEVICE_BUSY: "The microphone is in use by another application.",
    UNSUPPORTED_ENVIRONMENT: "Audio capture is not supported in this environment.",
    TOKEN_REJECTED: "Token request failed.",
    NETWORK_ERROR: "Realtime connection failed, please retry.",
}


class SessionFailure(RuntimeError):
    """Raised by session collaborators with one of the error codes above."""

    def __init__(self, code: str, message: str = "") -> None:
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, code)
        super().__init__(f"{code}: {self.message}")


def classify_device_error(exc: BaseException) -> str:
    """Map a PortAudio/sounddevice failure to an error code."""
    low = str(exc).lower()
    if "permission" in low or "not permitted" in low or "denied" in low:
        return PERMISSION_DENIED
    if "unavailable" in low or "busy" in low or "-9985" in low:
        return DEVICE_BUSY
    if (
        "no input device" in low
        or "no default input" in low
        or "invalid device" in low
        or "querying device" in low
        or "-9996" in low
    ):
        return DEVICE_NOT_FOUND
    if "portaudio" in low and "not found" in low:
        return UNSUPPORTED_ENVIRONMENT
    return DEVICE_BUSY
