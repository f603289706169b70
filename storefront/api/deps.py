from fastapi import Depends, Request

from storefront.core.config import Settings
from storefront.db.session import Database
from storefront.services.auth_flow import AuthFlowController


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_auth_flow(request: Request) -> AuthFlowController:
    return request.app.state.auth_flow


def request_base_url(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Origin used in emailed links: APP_BASE_URL, else what the proxy says we are."""
    if settings.APP_BASE_URL:
        return settings.APP_BASE_URL.rstrip("/")
    proto = request.headers.get("x-forwarded-proto")
    host = request.headers.get("x-forwarded-host")
    scheme = proto.split(",")[0].strip() if proto else request.url.scheme
    host = host.split(",")[0].strip() if host else request.headers.get("host")
    if host:
        return f"{scheme}://{host}"
    return str(request.base_url).rstrip("/")
