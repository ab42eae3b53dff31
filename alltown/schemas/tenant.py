from pydantic import Field

from .base import CamelModel


class TenantBrandingResponse(CamelModel):
    """Public branding of the resolved tenant; safe to show unauthenticated."""

    id: str
    company_name: str
    subdomain: str | None
    custom_domain: str | None
    logo_url: str | None
    primary_color: str
    plan_type: str
    is_main_site: bool


class TenantBrandingUpdate(CamelModel):
    company_name: str | None = Field(None, min_length=1, max_length=200)
    logo_url: str | None = Field(None, max_length=500)
    primary_color: str | None = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    custom_domain: str | None = Field(None, max_length=253)


class CacheClearResponse(CamelModel):
    cleared: bool = True
