class SupportChatError(Exception):
    pass


class ConfigError(SupportChatError):
    pass


class StoreError(SupportChatError):
    pass


class NotFoundError(SupportChatError):
    pass


class UpstreamError(SupportChatError):
    """Failure reported by the completion provider.

    ``user_message`` is safe to show in the chat window; the exception text
    itself may carry provider details and is only logged.
    """

    user_message = "Failed to generate reply. Please try again."

    def __init__(self, detail: str = "", user_message: str | None = None):
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class UpstreamAuthError(UpstreamError):
    user_message = "The assistant is not configured correctly. Please contact support."


class UpstreamRateLimitError(UpstreamError):
    user_message = "Rate limit exceeded. Please try again in a moment."


class UpstreamUnavailableError(UpstreamError):
    user_message = "The assistant service is temporarily unavailable. Please try again later."
