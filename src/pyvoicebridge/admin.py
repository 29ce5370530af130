"""Administrative HTTP endpoints for account setup and device listing."""

from __future__ import annotations

import logging

from aiohttp import web

from pyvoicebridge._constants import ADMIN_PREFIX
from pyvoicebridge.registry import AccountRegistry

_logger = logging.getLogger(__name__)

REGISTRY_KEY = web.AppKey("registry", AccountRegistry)


async def _handle_new_account(request: web.Request) -> web.Response:
    """Handle POST /new-account - look up devices for unsaved credentials.

    Request body:
        {"user": "...", "pass": "...", "webapi": "host", "id": "account id"}
    """
    try:
        data = await request.json()
    except ValueError:
        return web.json_response({"error": "Request body is not JSON"}, status=400)
    if not isinstance(data, dict):
        return web.json_response({"error": "Request body is not an object"}, status=400)

    account_id = data.get("id")
    if not account_id:
        return web.json_response({"error": "Missing 'id' field"}, status=400)

    directory = request.app[REGISTRY_KEY].directory
    devices = await directory.refresh(
        data.get("webapi") or "",
        data.get("user") or "",
        data.get("pass") or "",
        str(account_id),
    )
    return web.json_response({"id": account_id, "devices": 0 if devices is None else len(devices)})


async def _handle_refresh(request: web.Request) -> web.Response:
    """Handle POST /refresh/{id} - re-fetch a configured account's devices."""
    account_id = request.match_info["id"]
    registry = request.app[REGISTRY_KEY]
    if account_id not in registry:
        _logger.warning("Can't refresh devices of %s until the account is configured", account_id)
        return web.json_response({"error": f"Account {account_id!r} is not configured"}, status=404)
    await registry.refresh_devices(account_id)
    return web.json_response({"id": account_id})


async def _handle_devices(request: web.Request) -> web.Response:
    """Handle GET /devices/{id} - the cached device list."""
    account_id = request.match_info["id"]
    devices = request.app[REGISTRY_KEY].directory.as_wire(account_id)
    if devices is None:
        return web.json_response({"error": f"No devices cached for {account_id!r}"}, status=404)
    return web.json_response(devices)


def create_app(registry: AccountRegistry, *, prefix: str = ADMIN_PREFIX) -> web.Application:
    app = web.Application()
    app[REGISTRY_KEY] = registry
    app.router.add_post(f"{prefix}/new-account", _handle_new_account)
    app.router.add_post(f"{prefix}/refresh/{{id}}", _handle_refresh)
    app.router.add_get(f"{prefix}/devices/{{id}}", _handle_devices)
    return app


async def start_admin_server(registry: AccountRegistry, host: str, port: int) -> web.AppRunner:
    """Serve :func:`create_app` on *host*:*port*; caller cleans up the runner."""
    runner = web.AppRunner(create_app(registry))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    _logger.info("Admin API listening on %s:%d", host, port)
    _logger.info("  POST %s/new-account - look up devices for new credentials", ADMIN_PREFIX)
    _logger.info("  POST %s/refresh/{id} - refresh a configured account", ADMIN_PREFIX)
    _logger.info("  GET %s/devices/{id} - cached device list", ADMIN_PREFIX)
    return runner
