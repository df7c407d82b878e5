"""
Error taxonomy shared by the generation pipeline, auth session and persistence layer
"""


class InsituError(Exception):
    """Base class for application errors. The message is safe to show to users."""


class ValidationError(InsituError):
    """Bad user input: too many files, empty batch, empty prompt"""


class BatchLimitError(ValidationError):
    pass


class EmptyBatchError(ValidationError):
    pass


class EmptyPromptError(ValidationError):
    pass


class ImageReadError(InsituError):
    """Reading an uploaded file's bytes failed"""


class GenerationFailedError(InsituError):
    """The generative-image service failed. The provider error is logged, never attached."""


class GenerationInProgressError(InsituError):
    pass


class InvalidTransitionError(InsituError):
    pass


class AuthError(InsituError):
    pass


class UnauthenticatedError(AuthError):
    pass


class AccessRestrictedError(AuthError):
    """Email is not on the sign-in allow list"""


class PersistenceError(InsituError):
    pass


class NotFoundError(InsituError):
    pass


class PermissionDeniedError(InsituError):
    pass
