from fastapi import HTTPException, status

from image_studio.config import get_settings
from image_studio.services.lifecycle import TaskLifecycleController, get_controller


async def require_api_key():
    """
    Dependency that rejects remote operations while no RunningHub key is configured.
    """
    if not get_settings().is_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="RunningHub API key is not configured (set RUNNINGHUB_API_KEY)",
        )
    return True


def controller_dependency() -> TaskLifecycleController:
    return get_controller()
