"""
Command authentication using a Bearer token.

Every command endpoint requires PIPELINE_API_TOKEN; only /health is open.
"""

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from core.settings import settings

security = HTTPBearer()


def verify_pipeline_token(
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> str:
    """
    Verify the bearer token matches the configured secret.

    Raises:
        HTTPException: 500 if no token is configured, 401 if it does not match
    """
    if settings.pipeline_api_token is None:
        raise HTTPException(
            status_code=500,
            detail="Server misconfigured: PIPELINE_API_TOKEN not set",
        )

    if credentials.credentials != settings.pipeline_api_token.get_secret_value():
        raise HTTPException(
            status_code=401,
            detail="Invalid command authentication token",
        )

    return credentials.credentials
