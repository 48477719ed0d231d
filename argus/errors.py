"""
Error taxonomy for the detection subsystem.

Classes:
    ArgusError: Base class for every error raised by this package.
    ValidationError: Malformed rule/config/sample input, rejected before any change.
    NotFoundError: Unknown entity id, or a lifecycle transition that does not apply.
    EvaluationError: A detector or correlator failed for one item.
    DispatchError: A notification channel failed to deliver.
"""

from typing import Any, Dict, List, Optional


class ArgusError(Exception):
    """Base class for all detection subsystem errors."""


class ValidationError(ArgusError):
    """
    Raised when input fails validation.

    Attributes:
        message: Human-readable summary.
        errors: Field-level error details (pydantic-style dicts), if any.
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, exc: Exception, entity: str) -> "ValidationError":
        """
        Build a ValidationError from a pydantic ValidationError.

        Args:
            exc: The pydantic exception.
            entity: Entity name used in the message (e.g. "alert_rule").

        Returns:
            ValidationError: Converted error keeping the field details.
        """
        details: List[Dict[str, Any]] = []
        if hasattr(exc, "errors"):
            for err in exc.errors():
                details.append(
                    {
                        "loc": ".".join(str(part) for part in err.get("loc", ())),
                        "msg": err.get("msg", ""),
                        "type": err.get("type", ""),
                    }
                )
        fields = ", ".join(d["loc"] or "<root>" for d in details)
        message = f"Invalid {entity}: {fields}" if fields else f"Invalid {entity}: {exc}"
        return cls(message, errors=details)


class NotFoundError(ArgusError):
    """
    Raised for unknown ids and for lifecycle transitions that do not apply.

    Attributes:
        entity: Entity kind (e.g. "alert", "alert_rule").
        entity_id: The id that was looked up.
        transition: The transition attempted, when the entity exists but
            its current state does not allow it.
    """

    def __init__(
        self,
        entity: str,
        entity_id: str,
        transition: Optional[str] = None,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.transition = transition
        if transition is None:
            message = f"{entity} {entity_id} not found"
        else:
            message = f"{entity} {entity_id} not found for transition '{transition}'"
        super().__init__(message)


class EvaluationError(ArgusError):
    """
    Raised when evaluating one config, rule or metric fails.

    Attributes:
        item: Identifier of the failing item (config key or rule id).
        cause: Original exception, if any.
    """

    def __init__(self, item: str, message: str, cause: Optional[Exception] = None):
        self.item = item
        self.cause = cause
        super().__init__(f"Evaluation failed for {item}: {message}")


class DispatchError(ArgusError):
    """
    Raised by channel senders when a delivery fails.

    Attributes:
        channel_id: The channel that failed.
    """

    def __init__(self, channel_id: str, message: str):
        self.channel_id = channel_id
        super().__init__(f"Dispatch to channel {channel_id} failed: {message}")
