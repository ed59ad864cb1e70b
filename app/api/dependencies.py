from typing import Annotated

from fastapi import Depends, Header, Request

from app.core.identity import Viewer
from app.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_viewer(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_email: Annotated[str | None, Header()] = None,
) -> Viewer | None:
    """Resolve the caller from headers set by the upstream identity provider."""
    if not x_user_id:
        return None
    return Viewer(id=x_user_id, email=x_user_email or None)


ServicesDependency = Annotated[Services, Depends(get_services)]
ViewerDependency = Annotated[Viewer | None, Depends(get_viewer)]
OriginHeader = Annotated[str | None, Header()]
