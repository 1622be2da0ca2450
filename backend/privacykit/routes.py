from fastapi import APIRouter, Depends, Request

from .config import Settings
from .schemas import CreateLinkRequest, CreateLinkResponse, ErrorResponse
from .services import LinkService
from .utils import format_short_url, isoformat_millis
from .logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_service(request: Request) -> LinkService:
    """The LinkService built by the application lifespan."""
    return request.app.state.service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.post(
    "/create",
    response_model=CreateLinkResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse}
    }
)
def create_link(
    data: CreateLinkRequest,
    service: LinkService = Depends(get_service),
    settings: Settings = Depends(get_app_settings)
):
    """Create a new expiring link."""
    link = service.create_link(
        original_url=data.original_url,
        expiry_hours=data.expiry_hours,
        max_clicks=data.max_clicks,
    )

    return CreateLinkResponse(
        short_code=link.short_code,
        short_url=format_short_url(link.short_code, settings.BASE_URL),
        expires_at=isoformat_millis(link.expires_at),
        max_clicks=link.max_clicks,
    )
