class ConcurrentUpdateError(Exception):
    """Raised when a versioned update finds the document changed since it was read."""
    def __init__(self, message, expected_version=None, actual_version=None):
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version
