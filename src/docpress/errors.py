from __future__ import annotations


class DocPressError(Exception):
    pass


class ConfigError(DocPressError, ValueError):
    pass


class IntegrationError(DocPressError):
    def __init__(self, message: str, code: str, service: str) -> None:
        super().__init__(message)
        self.code = code
        self.service = service


class PipelineError(DocPressError):
    def __init__(self, message: str, stage: str, code: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.code = code or f"{stage.upper()}_FAILED"


class EmptyContentError(DocPressError, ValueError):
    pass


class UnsupportedMimeTypeError(DocPressError, ValueError):
    pass


class SanitizeError(DocPressError):
    pass


class InvalidTransitionError(DocPressError, ValueError):
    pass


class JobNotFoundError(DocPressError, LookupError):
    pass


class DuplicateJobError(DocPressError):
    pass
