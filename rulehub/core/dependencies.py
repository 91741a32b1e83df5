from fastapi import HTTPException, Request, status

from rulehub.domain.hub import Hub


def get_hub(request: Request) -> Hub:
    """The hub built at startup and stored on the application state."""
    hub = getattr(request.app.state, "hub", None)
    if hub is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="hub is not loaded")
    return hub
