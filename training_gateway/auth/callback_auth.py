"""Shared-secret check for the workflow callback endpoint."""

import hmac
import logging

from fastapi import Depends, Header, HTTPException

from training_gateway.api.deps import get_settings
from training_gateway.config import Settings

logger = logging.getLogger(__name__)


async def verify_callback_secret(
    x_callback_secret: str = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject callbacks lacking the configured X-Callback-Secret header.

    A no-op when CALLBACK_SECRET is unset.
    """
    expected = settings.callback_secret
    if not expected:
        return
    if not x_callback_secret or not hmac.compare_digest(
        x_callback_secret.encode(), expected.encode()
    ):
        logger.warning("Rejected callback with missing or invalid secret")
        raise HTTPException(status_code=401, detail="Invalid callback secret")
