"""Error taxonomy for the retrieval core."""


class HybridRagError(Exception):
    """Base class for all errors raised by this package."""


class ProviderUnavailableError(HybridRagError):
    """An embedding provider, vector store or full-text index could not be reached."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider} unavailable: {message}")


class MalformedModelOutputError(HybridRagError):
    """The LLM returned something that is not a list of relevance scores."""


class InvalidConfigurationError(HybridRagError, ValueError):
    """Per-request configuration failed validation. Raised before any stage runs."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid configuration: " + "; ".join(errors))
