class InputValidationError(ValueError):
    """Malformed request input; reported as 400 before any credit is spent."""
