class InvestManagerError(Exception):
    """Base class for all errors raised by invest-manager."""


class PortfolioError(InvestManagerError):
    pass


class NewsError(InvestManagerError):
    pass


class AdvisoryError(InvestManagerError):
    pass


class DeliveryError(InvestManagerError):
    pass


class SchedulerError(InvestManagerError):
    pass


class PipelineStepError(InvestManagerError):
    """A load-bearing pipeline step failed and the run was aborted."""

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"step '{step}' failed: {cause}")
        self.step = step
        self.cause = cause


class PipelineTimeoutError(InvestManagerError):
    def __init__(self, step: str, timeout: float) -> None:
        super().__init__(f"pipeline deadline of {timeout:.0f}s exceeded during step '{step}'")
        self.step = step
        self.timeout = timeout
