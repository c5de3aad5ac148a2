"""Custom exceptions for the logistics investigator."""

class InvestigatorException(Exception):
    """Base exception for the investigator."""
    pass

class ValidationError(InvestigatorException):
    """Request or tool input validation failed."""
    pass

class DataStoreError(InvestigatorException):
    """Analytical data store call failed."""
    pass

class ToolExecutionError(InvestigatorException):
    """A tool could not run with the parameters it was given."""
    pass

class ReasoningBackendError(InvestigatorException):
    """Reasoning backend invocation failed or returned an unusable response."""
    pass
