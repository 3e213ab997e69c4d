"""Wire models for the JumpServer REST API."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from plugins.base import ActualAsset, DesiredAsset


class AuthToken(BaseModel):
    """Response of POST /authentication/auth/."""

    model_config = ConfigDict(extra="ignore")

    token: str = Field(..., min_length=1)
    keyword: str = "Bearer"

    @property
    def header(self) -> str:
        return f"{self.keyword} {self.token}"


class AssetRecord(BaseModel):
    """An asset as returned by GET /assets/assets/."""

    model_config = ConfigDict(extra="ignore")

    id: str
    hostname: str
    ip: str = ""
    port: Optional[int] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("ip", mode="before")
    @classmethod
    def coerce_ip(cls, v: Any) -> str:
        return v or ""

    def to_actual(self) -> ActualAsset:
        return ActualAsset(
            identity=self.hostname,
            asset_id=self.id,
            address=self.ip,
            port=self.port,
        )


class AssetCreate(BaseModel):
    """Request body of POST /assets/assets/."""

    ip: str
    hostname: str
    port: int = Field(..., ge=1, le=65535)
    platform: str = "Linux"
    comment: str = ""
    is_active: bool = True
    admin_user: Optional[str] = None

    @classmethod
    def from_desired(
        cls, asset: DesiredAsset, admin_user: Optional[str] = None
    ) -> "AssetCreate":
        return cls(
            ip=asset.address,
            hostname=asset.identity,
            port=asset.port,
            platform=asset.platform,
            comment=asset.comment,
            admin_user=admin_user,
        )


class AssetUserCreate(BaseModel):
    """Request body of POST /assets/asset-users/."""

    username: str
    asset: str


class AdminUserRecord(BaseModel):
    """An admin user as returned by GET /assets/admin-users/."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)
