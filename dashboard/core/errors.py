class DashboardError(Exception):
    """Base class for every error raised by the dashboard engine."""


class ConfigurationError(DashboardError):
    """A required setting is missing or still a placeholder."""


class InvalidAddress(DashboardError):
    pass


class InvalidAmount(DashboardError):
    pass


class InsufficientBalance(DashboardError):
    pass


class UpstreamUnavailable(DashboardError):
    """Price or explorer API failed. Always recovered with a fallback."""


class AggregationError(DashboardError):
    pass


class SubmissionFailed(DashboardError):
    pass


class SubmissionTimeout(SubmissionFailed):
    pass
