"""Failure types raised by the OdontoMind components.

Components raise; only the HTTP layer turns these into user-facing messages.
"""


class OdontoMindError(Exception):
    """Base class for every application failure."""


class CredentialMissingError(OdontoMindError):
    """The Gemini API key is not configured."""


class GatewayError(OdontoMindError):
    """A call to the generative-AI service failed."""


class TransportError(GatewayError):
    """Network, provider or quota failure."""


class SchemaViolationError(GatewayError):
    """The model output did not match the declared schema."""


class EmptyInputError(OdontoMindError):
    """A local precondition failed before any network call."""


class NoDocumentsError(EmptyInputError):
    pass


class NoQuestionsError(EmptyInputError):
    pass


class ExtractionError(OdontoMindError):
    """The PDF could not be parsed."""


class InvalidFileError(OdontoMindError):
    pass


class NotFoundError(OdontoMindError):
    pass


class QuizStateError(OdontoMindError):
    """A quiz action was attempted in a state that does not allow it."""


class DuplicateDocumentError(OdontoMindError):
    """A document with the same id is already stored."""
