"""Conversion of gateway errors into HTTP errors."""

import logging

from fastapi import HTTPException

from switchboard_server.errors import GatewayError

logger = logging.getLogger(__name__)


def http_error(error: GatewayError) -> HTTPException:
    """Wrap a GatewayError in the API error envelope.

    Returns:
        HTTPException: With status error.http_status and
        detail {"error": {"code", "message", "details"}}
    """
    logger.warning(f"Request failed with {error.code}: {error}")
    return HTTPException(status_code=error.http_status, detail={"error": error.to_dict()})
