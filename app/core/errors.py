"""
Domain error taxonomy shared by services, stores and HTTP handlers.

  NotFoundError        → 404  unknown page view, or a page view's session is gone
  InputValidationError → 422  input that passed schema parsing but is still malformed
  StoreError           → 503  any persistence-layer failure

Nothing in the engine retries or compensates — errors surface to the caller unchanged.
"""


class AnalyticsError(Exception):
    pass


class NotFoundError(AnalyticsError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with id {entity_id} not found")


class InputValidationError(AnalyticsError):
    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class StoreError(AnalyticsError):
    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")
