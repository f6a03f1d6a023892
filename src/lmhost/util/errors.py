"""Error taxonomy shared by the provider lifecycle and session layers."""


class LMHostError(Exception):
    """Base class for all lmhost errors.

    ``kind`` is the stable identifier used when an error crosses the
    boundary to the UI process.
    """

    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class UnknownProvider(LMHostError):
    """Provider id is not in the registry table."""

    kind = "unknown_provider"

    def __init__(self, provider_id: str):
        super().__init__(f"Unknown provider '{provider_id}'")
        self.provider_id = provider_id


class NotInstalled(LMHostError):
    """Provider is required to be installed but detection found nothing."""

    kind = "not_installed"

    def __init__(self, provider_id: str, display_name: str | None = None):
        name = display_name or provider_id
        super().__init__(f"{name} is not installed. Please install it first.")
        self.provider_id = provider_id


class PermissionDenied(LMHostError):
    """Install/update needed elevated privileges."""

    kind = "permission_denied"


class ConversationBusy(LMHostError):
    """A stream is already active for the conversation."""

    kind = "conversation_busy"

    def __init__(self, conversation_id: str, session_id: str):
        super().__init__(
            f"Conversation '{conversation_id}' already has an active stream ({session_id})"
        )
        self.conversation_id = conversation_id
        self.session_id = session_id


class UnknownSession(LMHostError):
    """Session id is unknown or the session already reached a terminal state."""

    kind = "unknown_session"

    def __init__(self, session_id: str):
        super().__init__(f"Session '{session_id}' not found or already finished")
        self.session_id = session_id


class TransportError(LMHostError):
    """Malformed or unexpected response from a provider endpoint."""

    kind = "transport_error"

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.detail = detail

    def to_dict(self) -> dict[str, str]:
        data = super().to_dict()
        if self.detail:
            data["detail"] = self.detail
        return data


class TransportTimeout(TransportError):
    """Provider endpoint stopped responding within the configured timeout."""

    kind = "timeout"


class ProviderConnectionRefused(TransportError):
    """Provider is installed but its local server is not accepting connections."""

    kind = "connection_refused"

    def __init__(self, base_url: str, detail: str | None = None):
        super().__init__(
            f"Could not connect to {base_url}. Is the provider's local server running?",
            detail,
        )
        self.base_url = base_url
