#!/usr/bin/env python3

import json
import logging
import os
import shutil
import tempfile
import traceback
from typing import Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import FileResponse, HTMLResponse, JSONResponse, Response
from starlette.routing import Route
import uvicorn
import yaml

from auth_middleware import (
    AuthMiddleware,
    DefaultRejectMiddleware,
    noauth,
    orid_access,
    require_auth,
)
from errors import (
    InvalidIdentifierError,
    PathEscapeError,
    PermissionDeniedError,
    ResourceExistsError,
    ResourceNotFoundError,
    TerraformLockExistsError,
)
from identity_client import IdentityClient
from jwt_auth import JWTValidator
from logic import Logic
from models import HealthStatus, StructuredBody, TextBody
from orid import ORID, Orid, FS_SERVICE
from settings import Settings
from token_cache import TokenCache

logger = logging.getLogger(__name__)


class StarletteWebServer:
    """Starlette-based file service with default reject authentication"""

    def __init__(
        self,
        logic: Logic,
        settings: Settings,
        jwt_validator: JWTValidator,
        identity_client: Optional[IdentityClient] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        self.logic = logic
        self.settings = settings

        # Create middleware with default reject pattern
        middleware = [
            Middleware(
                AuthMiddleware,
                jwt_validator=jwt_validator,
                provider_key=settings.orid_provider_key,
                system_account_id=settings.system_account_id,
                identity_client=identity_client,
                token_cache=token_cache,
            ),
            Middleware(DefaultRejectMiddleware),
        ]

        routes = [
            Route("/health", self.health_check, methods=["GET"]),
            Route("/v1/containers", self.list_containers, methods=["GET"]),
            Route("/v1/createContainer/{name}", self.create_container, methods=["POST"]),
            Route("/v1/create/{orid:path}", self.create_directory, methods=["POST"]),
            Route("/v1/upload/{orid:path}", self.upload_file, methods=["POST"]),
            Route("/v1/download/{orid:path}", self.download_file, methods=["GET"]),
            Route("/v1/list/{orid:path}", self.list_contents, methods=["GET"]),
            Route("/v1/{orid:path}", self.delete_resource, methods=["DELETE"]),
            Route("/tf/{orid:path}", self.get_terraform_state, methods=["GET"]),
            Route("/tf/{orid:path}", self.save_terraform_state, methods=["POST"]),
            Route("/tf/{orid:path}", self.remove_terraform_state, methods=["DELETE"]),
            Route("/tf/{orid:path}", self.lock_terraform_state, methods=["LOCK"]),
            Route("/tf/{orid:path}", self.unlock_terraform_state, methods=["UNLOCK"]),
        ]
        if settings.enable_swagger:
            routes += [
                Route("/docs", self.api_docs, methods=["GET"]),
                Route("/openapi.yaml", self.openapi_spec, methods=["GET"]),
            ]

        self.app = Starlette(routes=routes, middleware=middleware)

    def _error_response(self, operation: str, orid: Optional[Orid], error: Exception) -> Response:
        """Map errors that are not specific to one endpoint"""
        if isinstance(error, PermissionDeniedError):
            return JSONResponse({"error": str(error)}, status_code=403)
        if isinstance(error, (InvalidIdentifierError, PathEscapeError)):
            return JSONResponse({"error": str(error)}, status_code=400)

        logger.error(f"Error during {operation} for {orid!r}: {error}")
        logger.error(f"{operation} traceback: {traceback.format_exc()}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    @noauth
    async def health_check(self, request: Request):
        """Health check endpoint - no authentication required"""
        return JSONResponse({"serverStatus": HealthStatus.OK.value})

    # Containers and files

    @require_auth()
    async def list_containers(self, request: Request):
        account_id = request.state.account_id
        try:
            containers = await run_in_threadpool(self.logic.get_containers, account_id)
        except Exception as e:
            return self._error_response("list containers", None, e)
        return JSONResponse([container.to_dict() for container in containers])

    @require_auth()
    async def create_container(self, request: Request):
        name = request.path_params["name"]
        orid = None
        try:
            orid = Orid(
                provider=self.settings.orid_provider_key,
                account_id=request.state.account_id,
                service=FS_SERVICE,
                resource_id=name,
            )
            orid_value = ORID.generate(orid)
            logger.debug(f"Creating container {orid_value}")
            await run_in_threadpool(self.logic.create_container_or_directory, orid)
        except ResourceExistsError:
            return Response(status_code=409)
        except Exception as e:
            return self._error_response("create container", orid, e)
        return JSONResponse({"orid": orid_value}, status_code=201)

    @require_auth()
    @orid_access
    async def create_directory(self, request: Request):
        orid = request.state.orid
        try:
            logger.debug(f"Creating folder in container {orid!r}")
            await run_in_threadpool(self.logic.create_container_or_directory, orid)
        except ResourceExistsError:
            return Response(status_code=409)
        except Exception as e:
            return self._error_response("create directory", orid, e)
        return JSONResponse({"orid": ORID.generate(orid)}, status_code=201)

    @require_auth()
    @orid_access
    async def upload_file(self, request: Request):
        orid = request.state.orid
        temp_path = None
        form = await request.form()
        try:
            upload = form.get("file")
            file_name = form.get("fileName")

            validation_errors = []
            if not isinstance(upload, UploadFile):
                validation_errors.append("file missing from payload")
            if not file_name or not isinstance(file_name, str):
                validation_errors.append("fileName missing from payload")
            if validation_errors:
                logger.debug(f"Upload rejected due to validation failures: {validation_errors}")
                return JSONResponse(
                    [{"message": message} for message in validation_errors], status_code=400
                )

            temp_path = await run_in_threadpool(self._spool_upload, upload)
            logger.debug(f"Uploading file {file_name} to {orid!r} from {temp_path}")
            uploaded_orid = await run_in_threadpool(
                self.logic.save_file, orid, file_name, temp_path
            )
        except Exception as e:
            return self._error_response("upload file", orid, e)
        finally:
            await form.close()
            if temp_path and os.path.exists(temp_path):
                try:
                    os.unlink(temp_path)
                except OSError as e:
                    logger.error(f"Failed to delete temporary upload {temp_path}: {e}")

        return JSONResponse({"orid": ORID.generate(uploaded_orid)})

    def _spool_upload(self, upload: UploadFile) -> str:
        """Copy an uploaded file to a local temp file and return its path"""
        with tempfile.NamedTemporaryFile(
            dir=self.settings.upload_temp_dir, prefix="upload-", delete=False
        ) as temp_file:
            upload.file.seek(0)
            shutil.copyfileobj(upload.file, temp_file)
            return temp_file.name

    @require_auth()
    @orid_access
    async def delete_resource(self, request: Request):
        orid = request.state.orid
        try:
            logger.debug(f"Deleting {orid!r}")
            await run_in_threadpool(self.logic.delete_file_or_directory, orid)
        except ResourceNotFoundError:
            return Response(status_code=404)
        except Exception as e:
            return self._error_response("delete", orid, e)
        return Response(status_code=204)

    @require_auth()
    @orid_access
    async def download_file(self, request: Request):
        orid = request.state.orid
        try:
            location = self.logic.get_internal_file_path(orid)
        except Exception as e:
            return self._error_response("download", orid, e)

        full_path = os.path.join(location.path, location.filename)
        logger.debug(f"Downloading file {orid!r} from {full_path}")
        if not os.path.isfile(full_path):
            return Response(status_code=404)
        return FileResponse(full_path, filename=location.filename)

    @require_auth()
    @orid_access
    async def list_contents(self, request: Request):
        orid = request.state.orid
        try:
            contents = await run_in_threadpool(self.logic.get_contents, orid)
        except ResourceNotFoundError:
            return Response(status_code=404)
        except Exception as e:
            return self._error_response("list contents", orid, e)
        return JSONResponse(contents.to_dict())

    # Terraform HTTP backend

    @require_auth(allow_basic=True)
    @orid_access
    async def get_terraform_state(self, request: Request):
        orid = request.state.orid
        try:
            state = await run_in_threadpool(self.logic.get_terraform_state, orid)
        except ResourceNotFoundError:
            # Terraform expects a blank state when none exists
            return Response(status_code=200)
        except Exception as e:
            return self._error_response("get terraform state", orid, e)
        return Response(state, media_type="application/json")

    @require_auth(allow_basic=True)
    @orid_access
    async def save_terraform_state(self, request: Request):
        orid = request.state.orid
        raw = await request.body()

        try:
            text = raw.decode("utf-8")
            if request.headers.get("content-type", "").startswith("application/json"):
                body = StructuredBody(json.loads(text))
            else:
                body = TextBody(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug(f"Invalid terraform state payload for {orid!r}: {e}")
            return JSONResponse({"error": "Invalid state payload"}, status_code=400)

        try:
            await run_in_threadpool(self.logic.save_terraform_state, orid, body)
        except Exception as e:
            return self._error_response("save terraform state", orid, e)
        return Response(status_code=200)

    @require_auth(allow_basic=True)
    @orid_access
    async def remove_terraform_state(self, request: Request):
        orid = request.state.orid
        try:
            await run_in_threadpool(self.logic.remove_terraform_metadata, orid)
        except Exception as e:
            return self._error_response("remove terraform state", orid, e)
        return Response(status_code=200)

    @require_auth(allow_basic=True)
    @orid_access
    async def lock_terraform_state(self, request: Request):
        orid = request.state.orid
        raw = await request.body()
        try:
            await run_in_threadpool(
                self.logic.create_terraform_lock, orid, raw.decode("utf-8", errors="replace")
            )
        except TerraformLockExistsError:
            return Response(status_code=423)
        except Exception as e:
            return self._error_response("lock terraform state", orid, e)
        return Response(status_code=200)

    @require_auth(allow_basic=True)
    @orid_access
    async def unlock_terraform_state(self, request: Request):
        orid = request.state.orid
        try:
            await run_in_threadpool(self.logic.release_terraform_lock, orid)
        except ResourceNotFoundError:
            return Response(status_code=410)
        except Exception as e:
            return self._error_response("unlock terraform state", orid, e)
        return Response(status_code=200)

    # Documentation

    @noauth
    async def api_docs(self, request: Request):
        """Serve interactive Swagger UI documentation - no authentication required"""
        openapi_url = f"{self._base_url(request)}/openapi.yaml"
        html_content = f"""
            <!DOCTYPE html>
            <html>
            <head>
                <title>ORID File Service API Documentation</title>
                <meta charset="utf-8">
                <link rel="stylesheet" type="text/css" href="https://unpkg.com/swagger-ui-dist@5.10.5/swagger-ui.css" />
            </head>
            <body>
                <div id="swagger-ui"></div>
                <script src="https://unpkg.com/swagger-ui-dist@5.10.5/swagger-ui-bundle.js"></script>
                <script>
                    window.onload = function() {{
                        SwaggerUIBundle({{ url: '{openapi_url}', dom_id: '#swagger-ui' }});
                    }};
                </script>
            </body>
            </html>
            """
        return HTMLResponse(html_content)

    @noauth
    async def openapi_spec(self, request: Request):
        """Serve OpenAPI specification - no authentication required"""
        yaml_content = yaml.dump(
            build_openapi_spec(self._base_url(request)), default_flow_style=False, sort_keys=False
        )
        return Response(
            yaml_content,
            media_type="application/x-yaml",
            headers={"Content-Disposition": "inline; filename=openapi.yaml"},
        )

    def _base_url(self, request: Request) -> str:
        # Use X-Forwarded-Proto header if present (common with reverse proxies)
        base_url = str(request.base_url).rstrip("/")
        forwarded_proto = request.headers.get("x-forwarded-proto")
        if forwarded_proto == "https" and base_url.startswith("http://"):
            base_url = base_url.replace("http://", "https://")
        return base_url

    def run(self, host: str = "0.0.0.0", port: Optional[int] = None):
        """Run the server"""
        port = port or self.settings.api_port
        logger.info(f"Starting Starlette file service on {host}:{port}")
        logger.info(f"Upload folder: {self.settings.upload_folder}")
        logger.info(f"ORID provider: {self.settings.orid_provider_key}")

        uvicorn.run(self.app, host=host, port=port, log_level=self.settings.log_level)


def _orid_operation(summary: str, responses: dict, tag: str = "Files") -> dict:
    return {
        "summary": summary,
        "tags": [tag],
        "parameters": [
            {
                "name": "orid",
                "in": "path",
                "required": True,
                "schema": {"type": "string"},
                "example": "orid:1:orid:::1001:fs:docs/notes.txt",
            }
        ],
        "responses": {str(code): {"description": text} for code, text in responses.items()},
    }


def build_openapi_spec(base_url: str) -> dict:
    """OpenAPI description of the public endpoints"""
    orid_item = {
        "type": "object",
        "properties": {"orid": {"type": "string"}, "name": {"type": "string"}},
    }
    return {
        "openapi": "3.0.3",
        "info": {
            "title": "ORID File Service API",
            "description": "Container and file storage addressed by ORIDs, plus a Terraform HTTP state backend.",
            "version": "1.0.0",
        },
        "servers": [{"url": base_url, "description": "Current server"}],
        "components": {
            "securitySchemes": {
                "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"},
                "basicAuth": {"type": "http", "scheme": "basic"},
            },
            "schemas": {
                "OridListItem": orid_item,
                "ContentsListing": {
                    "type": "object",
                    "properties": {
                        "directories": {"type": "array", "items": orid_item},
                        "files": {"type": "array", "items": orid_item},
                    },
                },
            },
        },
        "security": [{"bearerAuth": []}],
        "paths": {
            "/health": {
                "get": {
                    "summary": "Health check",
                    "tags": ["Health"],
                    "security": [],
                    "responses": {"200": {"description": "Service is healthy"}},
                }
            },
            "/v1/containers": {
                "get": {
                    "summary": "List the containers of the caller's account",
                    "tags": ["Files"],
                    "responses": {"200": {"description": "Array of OridListItem"}},
                }
            },
            "/v1/createContainer/{name}": {
                "post": {
                    "summary": "Create a container",
                    "tags": ["Files"],
                    "parameters": [
                        {"name": "name", "in": "path", "required": True, "schema": {"type": "string"}}
                    ],
                    "responses": {
                        "201": {"description": "Container created"},
                        "409": {"description": "Container already exists"},
                    },
                }
            },
            "/v1/create/{orid}": {
                "post": _orid_operation(
                    "Create a directory", {201: "Directory created", 409: "Already exists"}
                )
            },
            "/v1/upload/{orid}": {
                "post": _orid_operation(
                    "Upload a file (multipart fields: file, fileName)",
                    {200: "File stored", 400: "Missing form fields"},
                )
            },
            "/v1/download/{orid}": {
                "get": _orid_operation("Download a file", {200: "File contents", 404: "Not found"})
            },
            "/v1/list/{orid}": {
                "get": _orid_operation(
                    "List a container or directory", {200: "ContentsListing", 404: "Not found"}
                )
            },
            "/v1/{orid}": {
                "delete": _orid_operation(
                    "Delete a container, directory or file", {204: "Deleted", 404: "Not found"}
                )
            },
            "/tf/{orid}": {
                "get": _orid_operation(
                    "Get Terraform state (empty when none exists)", {200: "State"}, "Terraform"
                ),
                "post": _orid_operation("Store Terraform state", {200: "Stored"}, "Terraform"),
                "delete": _orid_operation(
                    "Remove Terraform state and lock", {200: "Removed"}, "Terraform"
                ),
            },
        },
    }


def create_server(
    logic: Logic,
    settings: Settings,
    jwt_validator: JWTValidator,
    identity_client: Optional[IdentityClient] = None,
    token_cache: Optional[TokenCache] = None,
) -> StarletteWebServer:
    """Create and configure the Starlette file service"""
    return StarletteWebServer(logic, settings, jwt_validator, identity_client, token_cache)
