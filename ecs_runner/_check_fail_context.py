class check_fail:
    """
    Context that exit silently at the first error of the expected type.
    If there was no error on leaving the context, raise one.
    The caught exception is available as 'exception' afterward.

    >>> with check_fail(NotFound) as failure:
    >>>     await describe_service_async(clients, "cluster", "missing")
    >>> failure.exception
    """

    def __init__(self, exception_type: type[Exception] = Exception, match: str | None = None):
        self.exception_type = exception_type
        self.match = match
        self.exception: Exception | None = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if isinstance(exc_value, self.exception_type):
            if self.match is not None and self.match not in str(exc_value):
                raise AssertionError(f"'{self.match}' not found in error message '{exc_value}'") from exc_value
            self.exception = exc_value
            return True
        elif exc_value is not None:
            raise exc_value
        raise RuntimeError("This should have raised an error.")
