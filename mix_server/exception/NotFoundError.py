class NotFoundError(Exception):
    """Raised when a chat, message or invite code an operation needs does not exist."""
    def __init__(self, message, resource=None, resource_id=None):
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id
