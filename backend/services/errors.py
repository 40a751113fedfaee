"""Domain exceptions raised by the service layer; routes map them to HTTP codes."""


class EditValidationError(ValueError):
    pass


class UnauthorizedError(PermissionError):
    pass


class NotFoundError(LookupError):
    pass


class GenerationFailedError(RuntimeError):
    pass
