"""
FastAPI HTTP server for the ST-Schema mock partner

Exposes:
- A mock OAuth 2.0 authorization server (/authorize, /token, /userinfo)
- The partner interaction endpoint (/interaction)
- Debug and health endpoints (/callback, /health)
"""

import html
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
import uvicorn

from .auth.callback_bridge import CallbackAccessBridge
from .auth.oauth_provider import create_authorization_code_flow
from .devices.handlers import DEFAULT_CAR_STATES
from .devices.registry import DeviceRegistry
from .devices.state_source import StateSource, create_state_source
from .errors import SchemaMockError
from .http_config import Config
from .interaction.dispatcher import InteractionDispatcher
from .models import LoginChallenge
from .security.audit_logger import get_security_audit_logger

logger = logging.getLogger(__name__)

LOGIN_FORM_TEMPLATE = """
<h2>Mock OAuth Login</h2>
<form method="{method}" action="{action}">
  <input type="hidden" name="client_id" value="{client_id}" />
  <input type="hidden" name="redirect_uri" value="{redirect_uri}" />
  <input type="hidden" name="state" value="{state}" />
  <label>User ID: <input type="text" name="username" /></label><br/>
  <label>Password: <input type="password" name="password" /></label><br/>
  <button type="submit">Login</button>
</form>
"""


def render_login_form(challenge: LoginChallenge) -> str:
    return LOGIN_FORM_TEMPLATE.format(
        method=challenge.method,
        action=challenge.action,
        client_id=html.escape(challenge.client_id or ""),
        redirect_uri=html.escape(challenge.redirect_uri),
        state=html.escape(challenge.state),
    )


class SchemaMockHTTPServer:
    """HTTP server owning the token store, device registry and dispatcher"""

    def __init__(self,
                 config: Config,
                 registry: Optional[DeviceRegistry] = None,
                 bridge: Optional[CallbackAccessBridge] = None,
                 state_source: Optional[StateSource] = None):
        self.config = config
        self.audit_logger = get_security_audit_logger(enabled=config.monitoring.audit_logging_enabled)

        self.oauth_flow = create_authorization_code_flow(
            secret_key=config.oauth.jwt_secret,
            access_token_expiry=config.oauth.access_token_expiry,
            auth_code_ttl=config.oauth.auth_code_ttl,
            audit_logger=self.audit_logger,
            identity_email_domain=config.oauth.identity_email_domain
        )

        if state_source is None:
            state_source = create_state_source(
                url=config.state_source.url,
                file_path=config.state_source.file_path,
                timeout=config.state_source.timeout,
                default=DEFAULT_CAR_STATES
            )
        self.registry = registry or DeviceRegistry.with_default_devices(
            state_source=state_source,
            refresh_timeout=config.state_source.refresh_timeout
        )
        self.bridge = bridge or CallbackAccessBridge(
            timeout=config.interaction.outbound_timeout,
            audit_logger=self.audit_logger
        )
        self.dispatcher = InteractionDispatcher(
            registry=self.registry,
            bridge=self.bridge,
            oauth_flow=self.oauth_flow,
            command_mode=config.interaction.command_mode,
            command_delay_seconds=config.interaction.command_delay_seconds,
            require_partner_token=config.interaction.require_partner_token,
            audit_logger=self.audit_logger
        )

        self.app = FastAPI(
            title="ST-Schema Mock Partner",
            description="Mock OAuth 2.0 server and st-schema partner endpoint",
            version="1.0.0",
            lifespan=self.lifespan
        )

        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routes()

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        """Manage application lifecycle"""
        logger.info(f"Starting mock partner server with {len(self.registry)} device(s)...")
        yield
        logger.info("Shutting down mock partner server...")

    def _setup_middleware(self):
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.config.server.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _setup_exception_handlers(self):
        @self.app.exception_handler(SchemaMockError)
        async def schema_mock_error_handler(request: Request, exc: SchemaMockError):
            if exc.status_code >= 500:
                logger.error(f"{request.url.path} failed: {exc}")
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @staticmethod
    async def _read_params(request: Request) -> Dict[str, Any]:
        """Accept both JSON and form-encoded bodies"""
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            try:
                data = await request.json()
            except ValueError:
                return {}
            return data if isinstance(data, dict) else {}
        form = await request.form()
        return {key: value for key, value in form.items()}

    def _setup_routes(self):
        """Setup FastAPI routes"""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint"""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        @self.app.get("/authorize", response_class=HTMLResponse)
        async def authorize_form(client_id: Optional[str] = None,
                                 redirect_uri: Optional[str] = None,
                                 state: Optional[str] = None):
            """Show the login form"""
            challenge = self.oauth_flow.begin_authorization(client_id, redirect_uri, state)
            return HTMLResponse(render_login_form(challenge))

        @self.app.post("/authorize")
        async def authorize_submit(request: Request):
            """Handle the login submission and redirect with a code"""
            params = await self._read_params(request)
            location = self.oauth_flow.submit_credentials(
                username=params.get("username"),
                password=params.get("password"),
                client_id=params.get("client_id"),
                redirect_uri=params.get("redirect_uri"),
                state=params.get("state")
            )
            return RedirectResponse(location, status_code=302)

        @self.app.post("/token")
        async def token(request: Request):
            """Exchange an authorization code for tokens"""
            params = await self._read_params(request)
            token_pair = self.oauth_flow.exchange_code(params.get("grant_type"), params.get("code"))
            return token_pair.model_dump()

        @self.app.get("/userinfo")
        async def userinfo(request: Request):
            """Return the identity behind a bearer token"""
            claims = self.oauth_flow.introspect(request.headers.get("Authorization"))
            return claims.model_dump()

        @self.app.get("/callback", response_class=HTMLResponse)
        async def callback(request: Request):
            """Echo redirect parameters for manual debugging"""
            params = json.dumps(dict(request.query_params), indent=2)
            return HTMLResponse(f"<h3>Callback</h3><pre>{html.escape(params)}</pre>")

        @self.app.post("/interaction")
        async def interaction(request: Request):
            """Partner schema endpoint"""
            try:
                body = await request.json()
            except ValueError:
                body = {}
            result = await self.dispatcher.dispatch(body)
            return JSONResponse(status_code=result.status_code, content=result.body)

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """Run the HTTP server"""
        uvicorn.run(self.app,
                    host=host or self.config.server.host,
                    port=port or self.config.server.port)


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Application factory for ``uvicorn --factory``"""
    if config is None:
        config = Config.from_env()
        config.validate()
    return SchemaMockHTTPServer(config).app


def main():
    """Main entry point for HTTP server"""
    config = Config.from_env()
    config.validate()
    logging.basicConfig(
        level=getattr(logging, config.monitoring.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    server = SchemaMockHTTPServer(config)

    logger.info(f"Starting mock partner server on port {config.server.port}")
    server.run()


if __name__ == "__main__":
    main()
