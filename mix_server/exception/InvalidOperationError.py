class InvalidOperationError(Exception):
    """Raised when an operation is not allowed on the chat or message it targets."""
    def __init__(self, message):
        super().__init__(message)


class CapacityExceededError(InvalidOperationError):
    """Raised when a group already holds settings.max_members participants."""
    def __init__(self, message, max_members=None):
        super().__init__(message)
        self.max_members = max_members


class InvalidChatTypeError(InvalidOperationError):
    """Raised when a group-only operation is requested on a direct chat."""
    def __init__(self, message, chat_type=None):
        super().__init__(message)
        self.chat_type = chat_type
