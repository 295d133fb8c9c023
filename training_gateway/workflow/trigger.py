"""Outbound trigger for the external training workflow."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests
from pydantic import BaseModel, ConfigDict, Field

from training_gateway.errors import DispatchError

logger = logging.getLogger(__name__)


class TriggerPayload(BaseModel):
    """Body posted to the workflow webhook."""
    model_config = ConfigDict(populate_by_name=True)

    dataset_url: str = Field(alias="csvUrl")
    email: str
    job_id: str = Field(alias="jobId")
    callback_url: str


class WorkflowTrigger(ABC):
    """Hands a stored dataset off to the external processor."""

    @abstractmethod
    def dispatch(self, payload: TriggerPayload) -> None:
        """Send the trigger. Raises DispatchError if it was not accepted.

        Blocking; callers that must not wait run it in a background task.
        """
        ...

    def close(self) -> None:
        """Release connections. Called once at shutdown."""


class WebhookTrigger(WorkflowTrigger):
    """Posts the payload as JSON to an n8n-style webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self._url = url
        self._timeout = timeout
        self._session = session or requests.Session()

    def dispatch(self, payload: TriggerPayload) -> None:
        logger.info("Triggering workflow for job %s at %s", payload.job_id, self._url)
        try:
            response = self._session.post(
                self._url,
                json=payload.model_dump(by_alias=True),
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise DispatchError(f"Failed to trigger workflow: {e}") from e

        logger.info(
            "Workflow triggered for job %s (HTTP %d)", payload.job_id, response.status_code
        )

    def close(self) -> None:
        self._session.close()
