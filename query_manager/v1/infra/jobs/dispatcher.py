"""
Routes a job's declared type to the handler registered for it.
"""

from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError

from query_manager.v1.core.exceptions import (
    HandlerError,
    QueryManagerException,
    UnknownJobTypeError,
    ValidationError,
)
from query_manager.v1.core.registries import JobHandler, JobRegistry, job_registry


class JobDispatcher:
    """Maps job types to handlers from a job registry."""

    def __init__(self, registry: JobRegistry | None = None):
        self.registry = registry if registry is not None else job_registry

    def known_types(self) -> list[str]:
        return self.registry.list()

    def handler_for(self, job_type: str) -> JobHandler:
        try:
            return self.registry.get(job_type)
        except KeyError:
            raise UnknownJobTypeError(job_type) from None

    def validate(self, job_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Check a job before it is enqueued.

        Raises ValidationError for unknown types or payloads rejected by the
        handler's payload model. Returns the normalised payload.
        """
        if job_type not in self.registry:
            raise ValidationError(
                f"Unknown job type: {job_type}",
                details={"type": job_type, "known_types": self.known_types()},
            )

        payload_model = getattr(self.registry.get(job_type), "payload_model", None)
        if payload_model is None:
            return payload

        try:
            return payload_model.model_validate(payload).model_dump(mode="json")
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid payload for job type {job_type}",
                details={
                    "errors": jsonable_encoder(
                        e.errors(include_url=False, include_context=False)
                    )
                },
            ) from e

    async def dispatch(self, job_type: str, payload: dict[str, Any]) -> Any:
        """
        Execute a payload with the handler for ``job_type``.

        Application errors (NotFoundError, HandlerError, ...) propagate as is;
        anything else is wrapped in HandlerError. The result is converted to
        JSON-compatible data so it can be stored with the job.
        """
        handler = self.handler_for(job_type)
        try:
            result = await handler.handle(payload)
            return jsonable_encoder(result)
        except QueryManagerException:
            raise
        except Exception as e:
            raise HandlerError(
                str(e) or e.__class__.__name__,
                details={"type": job_type, "exception": e.__class__.__name__},
            ) from e
