"""Exception types for sessions, stores and voice capture."""


class ReviewError(Exception):
    """Base class for all voice_review errors."""


class SessionError(ReviewError):
    pass


class EmptyItemSet(SessionError):
    def __init__(self):
        super().__init__("No review items available")


class NoActiveSession(SessionError):
    def __init__(self, session_id: str | None = None):
        self.session_id = session_id
        msg = "No active review session"
        if session_id:
            msg += f" with ID {session_id}"
        super().__init__(msg)


class ItemNotFound(SessionError):
    def __init__(self, item_id: str, session_id: str | None = None):
        self.item_id = item_id
        self.session_id = session_id
        super().__init__(f"Item with ID {item_id} not found in session {session_id}")


class ItemAlreadyAnswered(SessionError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item with ID {item_id} has already been answered")


class SessionAlreadyCompleted(SessionError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session with ID {session_id} is already completed")


class StoreError(ReviewError):
    pass


class NotFound(StoreError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session with ID {session_id} not found")


class PersistenceFailure(StoreError):
    pass


class VoiceCaptureError(ReviewError):
    """A failed capture. The message is what the user sees."""

    message = "Speech recognition failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class UnsupportedCapability(VoiceCaptureError):
    message = "Speech recognition is not supported in this browser"


class RecordingTooShort(VoiceCaptureError):
    message = "Recording too short. Please speak longer."


class NoSpeechDetected(VoiceCaptureError):
    message = "No speech detected. Please try again."


class NoMicrophone(VoiceCaptureError):
    message = "No microphone detected. Please check your device."


class RecognitionDenied(VoiceCaptureError):
    message = "Microphone access denied. Please allow microphone access."


class NetworkError(VoiceCaptureError):
    message = "Network error. Please check your connection."


class ServiceDisallowed(VoiceCaptureError):
    message = "Speech recognition service not allowed."
