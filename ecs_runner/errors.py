class ECSRunnerException(Exception):
    """
    Base of all the errors raised by ecs_runner.
    When raised during the wait phase of an execution, 'result' holds the
    partial ExecutionResult collected so far (logs included).
    """

    def __init__(self, message: str, result: object | None = None):
        super().__init__(message)
        self.message = message
        self.result = result

    def __str__(self) -> str:
        return self.message

    def add_context(self, context: str) -> "ECSRunnerException":
        """
        Prefix the message with some context, keeping the exception type
        """
        self.message = f"{context}: {self.message}"
        return self


class NotFound(ECSRunnerException):
    pass


class Unsupported(ECSRunnerException):
    pass


class MissingField(ECSRunnerException):
    pass


class MalformedResponse(ECSRunnerException):
    pass


class LaunchRejected(ECSRunnerException):
    pass


class StreamError(ECSRunnerException):
    pass


class ExecutionCancelled(ECSRunnerException):
    pass


class ExecutionFailed(ECSRunnerException):
    pass


class TaskFailed(ECSRunnerException):
    """
    The task reached the STOPPED status with a nonzero container exit code
    """

    def __init__(self, task_arn: str, exit_code: int, result: object | None = None):
        super().__init__(f"task {task_arn} failed with exit code {exit_code}", result)
        self.task_arn = task_arn
        self.exit_code = exit_code
