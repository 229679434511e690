"""
HTTP boundary — aiohttp endpoints over the secret store.

Routes:
    POST /api/create       {encryptedPayload, expiryOption, readOnce} -> {secretId}
    GET  /api/secret/{id}  -> {encryptedPayload, metadata}

Errors are answered as ``{"error": ..., "details"?: ...}`` with the status
carried by the raised exception.
"""
import logging
from typing import Any, Optional

import orjson
from aiohttp import web

from .exceptions import InvalidId, NotFound, SecretDropError, ValidationError
from .store import RedisBackend, SecretStore, StoreConfig

logger = logging.getLogger("secret_drop.web")

STORE_KEY = web.AppKey("secret_store", SecretStore)

# a JSON string escapes one character to at most six bytes (\uXXXX)
_MAX_BYTES_PER_CHAR = 6
# room for the JSON wrapper around a maximum-size payload
_BODY_OVERHEAD = 64 * 1024


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def json_response(body: dict, status: int = 200) -> web.Response:
    return web.json_response(body, status=status, dumps=_dumps)


def error_response(err: SecretDropError) -> web.Response:
    body = {"error": err.message}
    if err.details:
        body["details"] = err.details
    return json_response(body, status=err.status_code)


async def create_secret(request: web.Request) -> web.Response:
    store = request.app[STORE_KEY]
    try:
        body = await request.json(loads=orjson.loads)
    except web.HTTPRequestEntityTooLarge as err:
        return json_response(
            {"error": "Invalid payload or payload too large", "details": err.text},
            status=400,
        )
    except ValueError:
        return json_response({"error": "Invalid JSON body"}, status=400)
    if not isinstance(body, dict):
        return json_response({"error": "Invalid JSON body"}, status=400)
    try:
        secret_id = await store.create(
            body.get("encryptedPayload"),
            read_once=bool(body.get("readOnce")),
            expiry_option=body.get("expiryOption"),
        )
    except ValidationError as err:
        return error_response(err)
    except Exception as err:
        logger.exception("Error creating secret")
        return json_response(
            {"error": "Failed to create secret", "details": str(err)},
            status=500,
        )
    return json_response({"secretId": secret_id})


async def get_secret(request: web.Request) -> web.Response:
    store = request.app[STORE_KEY]
    secret_id = request.match_info["id"]
    try:
        record = await store.fetch(secret_id)
    except (InvalidId, NotFound) as err:
        return error_response(err)
    except Exception as err:
        logger.exception("Error retrieving secret id=%s", secret_id)
        return json_response(
            {"error": "Failed to retrieve secret", "details": str(err)},
            status=500,
        )
    return json_response(record.to_wire())


@web.middleware
async def api_not_found(request: web.Request, handler) -> web.StreamResponse:
    """Answer unmatched /api/ requests (unknown path or method) with a JSON 404."""
    try:
        return await handler(request)
    except (web.HTTPNotFound, web.HTTPMethodNotAllowed):
        if request.path.startswith("/api/"):
            return json_response({"error": "API endpoint not found"}, status=404)
        raise


async def _close_store(app: web.Application) -> None:
    await app[STORE_KEY].close()


def setup_routes(app: web.Application) -> None:
    app.router.add_post("/api/create", create_secret)
    app.router.add_get("/api/secret/{id}", get_secret)


def create_app(
    store: Optional[SecretStore] = None,
    config: Optional[StoreConfig] = None,
) -> web.Application:
    """Build the aiohttp application.

    Args:
        store: Secret store to serve; built over Redis from config when omitted.
        config: Store configuration; read from the environment when omitted.

    Returns:
        Configured web.Application.
    """
    if store is None:
        config = config or StoreConfig.from_env()
        backend = RedisBackend.from_url(config.redis_url, key_prefix=config.key_prefix)
        store = SecretStore(backend, config=config)
    app = web.Application(
        middlewares=[api_not_found],
        client_max_size=store.config.max_payload_size * _MAX_BYTES_PER_CHAR + _BODY_OVERHEAD,
    )
    app[STORE_KEY] = store
    setup_routes(app)
    app.on_cleanup.append(_close_store)
    return app
