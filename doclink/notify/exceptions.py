class NotifyError(Exception):
    """Raised when a message could not be delivered to the user."""
