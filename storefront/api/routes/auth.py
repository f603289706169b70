import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse

from storefront.api.deps import get_auth_flow, get_settings, request_base_url
from storefront.core.config import Settings
from storefront.schemas.auth import (
    ChangePasswordIn,
    LoginIn,
    LoginOut,
    ProfileIn,
    ProfileOut,
    RegisterIn,
    RegisterOut,
    ResendVerificationIn,
    ResendVerificationOut,
)
from storefront.schemas.common import Message
from storefront.schemas.openapi import error_responses
from storefront.services.auth_flow import AuthFlowController, VerificationOutcome

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def landing_url(landing_path: str, outcome: VerificationOutcome) -> str:
    sep = "&" if "?" in landing_path else "?"
    return f"{landing_path}{sep}verified={outcome.value}"


@router.post(
    "/register",
    response_model=RegisterOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(400, 409),
)
async def register(
    data: RegisterIn,
    flow: AuthFlowController = Depends(get_auth_flow),
    base_url: str = Depends(request_base_url),
):
    return await flow.register(data.username, data.password, data.email, base_url=base_url)


@router.post("/login", response_model=LoginOut, responses=error_responses(400, 401, 403))
async def login(data: LoginIn, flow: AuthFlowController = Depends(get_auth_flow)):
    return await flow.login(data.username, data.password)


@router.post(
    "/resend-verification",
    response_model=ResendVerificationOut,
    response_model_exclude_none=True,
    responses=error_responses(400, 404),
)
async def resend_verification(
    data: ResendVerificationIn,
    flow: AuthFlowController = Depends(get_auth_flow),
    base_url: str = Depends(request_base_url),
):
    return await flow.resend_verification(data.username, base_url=base_url)


@router.get("/verify", response_class=RedirectResponse, status_code=status.HTTP_302_FOUND)
async def verify(
    token: str | None = None,
    flow: AuthFlowController = Depends(get_auth_flow),
    settings: Settings = Depends(get_settings),
):
    # reached from an email client: always answer with a redirect, never JSON
    try:
        outcome = await flow.verify(token)
    except Exception:
        logger.exception("Unexpected error while verifying email")
        outcome = VerificationOutcome.error
    return RedirectResponse(landing_url(settings.VERIFY_LANDING_PATH, outcome), status_code=status.HTTP_302_FOUND)


@router.post("/profile", response_model=ProfileOut, responses=error_responses(400, 404))
async def profile(data: ProfileIn, flow: AuthFlowController = Depends(get_auth_flow)):
    return await flow.profile(data.username)


@router.post("/change-password", response_model=Message, responses=error_responses(400, 401))
async def change_password(data: ChangePasswordIn, flow: AuthFlowController = Depends(get_auth_flow)):
    return await flow.change_password(data.username, data.current_password, data.new_password)
