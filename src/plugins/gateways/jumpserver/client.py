"""
JumpServer Gateway Plugin - Implements GatewayPlugin for JumpServer.

Talks to the JumpServer v1 REST API with aiohttp. A bearer token is obtained
lazily with the configured credentials and re-acquired once whenever the
server rejects it, so callers never deal with authentication.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from pydantic import ValidationError

from plugins.base import (
    ActualAsset,
    ConflictError,
    DesiredAsset,
    SyncError,
    TransportError,
)
from plugins.gateways.base import GatewayPlugin
from plugins.gateways.jumpserver.models import (
    AdminUserRecord,
    AssetCreate,
    AssetRecord,
    AssetUserCreate,
    AuthToken,
)

logger = logging.getLogger(__name__)

API_PATH = "/api/v1"

AUTH_PATH = "/authentication/auth/"
ASSETS_PATH = "/assets/assets/"
ASSET_USERS_PATH = "/assets/asset-users/"
ADMIN_USERS_PATH = "/assets/admin-users/"


def normalize_base_url(host: str) -> str:
    """Prefix http:// when no scheme is given and make sure the URL ends in /api/v1."""
    url = host.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = "http://" + url
    if not url.endswith(API_PATH):
        url = url + API_PATH
    return url


def _results(body: Any) -> List[Any]:
    """Extract the item list from a paginated or plain list response."""
    if isinstance(body, dict):
        return list(body.get("results") or [])
    if isinstance(body, list):
        return body
    return []


def _is_duplicate_hostname(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    errors = body.get("hostname")
    return errors is not None and "exist" in str(errors).lower()


def _raise_for_status(status: int, body: Any, action: str) -> None:
    if 200 <= status < 300:
        return
    detail = body if isinstance(body, str) else json.dumps(body)
    raise TransportError(f"{action} failed: HTTP {status}: {detail[:300]}", status=status)


class JumpServerGateway(GatewayPlugin):
    """Gateway plugin that manages JumpServer assets."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        admin_user: str = "",
        page_size: int = 65535,
        request_timeout: float = 30,
    ):
        self.base_url = normalize_base_url(host)
        self.username = username
        self._password = password
        self.admin_user = admin_user
        self.page_size = page_size
        self.request_timeout = request_timeout

        self._auth_header: Optional[str] = None
        self._auth_lock = asyncio.Lock()
        self._admin_user_id: Optional[str] = None

    @property
    def name(self) -> str:
        return "jumpserver"

    # Transport

    async def _send(
        self,
        method: str,
        path: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Any]:
        """Perform one HTTP round trip and return (status, decoded body)."""
        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, headers=headers, params=params, json=body
                ) as response:
                    status = response.status
                    text = await response.text()
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"{method} {url} timed out after {self.request_timeout}s"
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if not text:
            return status, None
        try:
            return status, json.loads(text)
        except json.JSONDecodeError:
            return status, text

    async def _authenticate(self, stale: Optional[str] = None) -> None:
        """Obtain a new token unless another task already replaced the stale one."""
        async with self._auth_lock:
            if self._auth_header is not None and self._auth_header != stale:
                return
            status, body = await self._send(
                "POST",
                AUTH_PATH,
                headers={"Accept": "application/json"},
                body={"username": self.username, "password": self._password},
            )
            if status not in (200, 201):
                self._auth_header = None
                raise TransportError(
                    f"Authentication as '{self.username}' failed: HTTP {status}",
                    status=status,
                )
            try:
                token = AuthToken.model_validate(body)
            except ValidationError as e:
                raise TransportError(f"Unexpected authentication response: {e}") from e
            self._auth_header = token.header
            logger.debug(f"Authenticated to {self.base_url} as {self.username}")

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Any]:
        """Send an authenticated request, re-authenticating once on 401/403."""
        if self._auth_header is None:
            await self._authenticate()

        used = self._auth_header
        headers = {"Accept": "application/json", "Authorization": used}
        status, data = await self._send(method, path, headers, params=params, body=body)
        if status in (401, 403):
            logger.info(f"Token rejected with HTTP {status}, re-authenticating")
            await self._authenticate(stale=used)
            headers["Authorization"] = self._auth_header
            status, data = await self._send(
                method, path, headers, params=params, body=body
            )
            if status in (401, 403):
                raise TransportError(
                    f"{method} {path} not authorized for '{self.username}'",
                    status=status,
                )
        return status, data

    # Inventory operations

    async def list_actual_assets(self) -> List[ActualAsset]:
        status, body = await self._request(
            "GET", ASSETS_PATH, params={"offset": 0, "limit": self.page_size}
        )
        _raise_for_status(status, body, "Listing assets")

        items = _results(body)
        if isinstance(body, dict) and (body.get("count") or 0) > len(items):
            logger.warning(
                f"Asset list truncated: {len(items)} of {body['count']} returned; "
                "raise JMS_PAGE_SIZE to see every asset"
            )

        assets = []
        for item in items:
            try:
                assets.append(AssetRecord.model_validate(item).to_actual())
            except ValidationError as e:
                logger.warning(f"Ignoring malformed asset record {item!r}: {e}")
        logger.info(f"Collected {len(assets)} assets in jumpserver")
        return assets

    async def create_asset(self, asset: DesiredAsset) -> str:
        payload = AssetCreate.from_desired(asset, admin_user=await self._admin_user_ref())
        status, body = await self._request(
            "POST", ASSETS_PATH, body=payload.model_dump(exclude_none=True)
        )
        if status == 409 or (status == 400 and _is_duplicate_hostname(body)):
            raise ConflictError(asset.identity)
        _raise_for_status(status, body, f"Creating asset {asset.identity}")

        try:
            return AssetRecord.model_validate(body).id
        except ValidationError as e:
            raise TransportError(
                f"Unexpected response creating asset {asset.identity}: {e}"
            ) from e

    async def delete_asset(self, identity: str, asset_id: Optional[str] = None) -> None:
        if asset_id is None:
            record = await self._find_asset(identity)
            if record is None:
                logger.info(f"Asset {identity} does not exist in jumpserver")
                return
            asset_id = record.id

        status, body = await self._request("DELETE", f"{ASSETS_PATH}{asset_id}/")
        if status == 404:
            logger.info(f"Asset {identity} ({asset_id}) was already removed")
            return
        _raise_for_status(status, body, f"Deleting asset {identity}")

    async def bind_asset_to_principal(self, principal: str, asset_id: str) -> None:
        payload = AssetUserCreate(username=principal, asset=asset_id)
        status, body = await self._request(
            "POST", ASSET_USERS_PATH, body=payload.model_dump()
        )
        _raise_for_status(status, body, f"Binding asset {asset_id} to {principal}")

    async def _find_asset(self, identity: str) -> Optional[AssetRecord]:
        status, body = await self._request(
            "GET",
            ASSETS_PATH,
            params={"hostname": identity, "offset": 0, "limit": self.page_size},
        )
        _raise_for_status(status, body, f"Looking up asset {identity}")
        for item in _results(body):
            try:
                record = AssetRecord.model_validate(item)
            except ValidationError:
                continue
            if record.hostname == identity:
                return record
        return None

    async def _admin_user_ref(self) -> Optional[str]:
        """Resolve the configured admin user name to its id."""
        if not self.admin_user:
            return None
        if self._admin_user_id is not None:
            return self._admin_user_id

        status, body = await self._request(
            "GET",
            ADMIN_USERS_PATH,
            params={"name": self.admin_user, "offset": 0, "limit": self.page_size},
        )
        _raise_for_status(status, body, f"Looking up admin user {self.admin_user}")
        for item in _results(body):
            try:
                record = AdminUserRecord.model_validate(item)
            except ValidationError:
                continue
            if record.name == self.admin_user:
                self._admin_user_id = record.id
                return record.id
        raise SyncError(f"Admin user '{self.admin_user}' not found in jumpserver")
