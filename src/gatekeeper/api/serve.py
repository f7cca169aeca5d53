"""API server for ``gatekeeper serve``.

Builds the FastAPI app with the versioned ``/api/v1/`` routers, CORS and the
OAuth2 security schemes in its OpenAPI document.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def create_api_app():
    """Build the FastAPI application."""
    from fastapi import FastAPI, Request
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.openapi.utils import get_openapi
    from fastapi.responses import JSONResponse

    from gatekeeper import __version__
    from gatekeeper.api.v1 import mount_v1_routers
    from gatekeeper.auth.documentation import document_components
    from gatekeeper.auth.errors import AuthServerError
    from gatekeeper.auth.server import get_auth_server
    from gatekeeper.config import get_settings

    settings = get_settings()

    app = FastAPI(
        title="Gatekeeper API",
        description="OAuth2 authorization server.",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    # --- CORS -----------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allowed_origins),
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # --- Errors ---------------------------------------------------------
    @app.exception_handler(AuthServerError)
    async def _auth_server_error(request: Request, exc: AuthServerError):
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers={"Cache-Control": "no-store"},
        )

    # --- Mount all /api/v1/ routers -------------------------------------
    mount_v1_routers(app)

    # --- OpenAPI security schemes ---------------------------------------
    def _openapi():
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        app.openapi_schema = document_components(get_auth_server(), schema)
        return app.openapi_schema

    app.openapi = _openapi

    return app


def run_api_server(
    host: str = "127.0.0.1",
    port: int = 8888,
    dev: bool = False,
) -> None:
    """Start the API server."""
    import uvicorn
    from rich.console import Console

    console = Console()
    console.rule("[bold]GATEKEEPER OAUTH2 SERVER")
    console.print(f"API docs: http://{host}:{port}/api/v1/docs")
    console.print(f"Token endpoint: http://{host}:{port}/api/v1/oauth/token\n")

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "gatekeeper.api.serve:create_api_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        app = create_api_app()
        uvicorn.run(app, host=host, port=port, log_config=None)
