"""Exception and warning types raised by NeuroShell."""

from typing import Optional


class NeuroShellError(Exception):
    """Base class for every error raised by this package."""


# --- Sessions ---
class InvalidSessionNameError(NeuroShellError, ValueError):
    pass


class SessionNotFoundError(NeuroShellError, LookupError):
    pass


class AmbiguousSessionError(NeuroShellError, LookupError):
    """A prefix matched more than one session."""

    def __init__(self, prefix: str, names):
        self.prefix = prefix
        self.names = sorted(names)
        super().__init__(
            f"multiple sessions match prefix '{prefix}': {', '.join(self.names)}"
        )


class SessionNameInUseError(NeuroShellError, ValueError):
    pass


class SessionPersistenceError(NeuroShellError, OSError):
    """Reading or writing a session file failed."""


class SessionRenamedWarning(UserWarning):
    """A requested session name was taken or reserved and got auto-versioned."""


# --- Clients ---
class UnsupportedProviderError(NeuroShellError, ValueError):
    def __init__(self, provider: str, supported):
        self.provider = provider
        self.supported = list(supported)
        super().__init__(
            f"unsupported provider '{provider}'. "
            f"Supported providers: {', '.join(self.supported)}"
        )


class InvalidClientRequestError(NeuroShellError, ValueError):
    pass


class ClientNotFoundError(NeuroShellError, LookupError):
    pass


class MissingCredentialError(NeuroShellError):
    def __init__(self, provider: str, env_var: str):
        self.provider = provider
        self.env_var = env_var
        super().__init__(
            f"{provider} API key not found. "
            f"Please set the {env_var} environment variable"
        )


# --- Dispatch ---
class ServiceNotInitializedError(NeuroShellError):
    pass


class ClientNotProvidedError(NeuroShellError, ValueError):
    pass


class ClientNotConfiguredError(NeuroShellError):
    pass


class ClientInitializationError(NeuroShellError):
    pass


class ProviderRequestError(NeuroShellError):
    """A vendor call failed. Never carries the credential."""

    def __init__(
        self, provider: str, message: str, status_code: Optional[int] = None
    ):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider} request failed: {message}")


class EmptyResponseError(NeuroShellError):
    pass
