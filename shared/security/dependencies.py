from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from .api_key import verify_api_key

# Sent by back-office tools and the cron job driving the sweep
api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


async def verify_internal_api_key(api_key: str | None = Depends(api_key_header)) -> bool:
    if not verify_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="management routes require a valid X-Internal-API-Key header",
        )
    return True
