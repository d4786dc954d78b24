class GenerationError(ValueError):
    """Structural input missing for a SQL statement (blank names, nothing to SET...)."""


class GuardRejection(ValueError):
    """Free-form SQL refused by the coarse guard before dispatch."""

    def __init__(self, reason: str, sql: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.sql = sql
