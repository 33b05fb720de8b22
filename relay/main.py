import logging
import time
from typing import Any, List

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .db import Store
from .errors import InvalidInput, RelayError
from .models import Device
from .schemas import (
    CommandRequest, CommandResponse, DeviceOut, ErrorOut, FindResult,
    PostResponseResult, RegisterRequest, RegisterResponse,
)
from .service import RelayService
from .settings import Settings, settings
from .utils import add_cors

log = logging.getLogger("relay.api")

router = APIRouter()

def get_service(request: Request) -> RelayService:
    return request.app.state.service

def _device_out(d: Device) -> DeviceOut:
    return DeviceOut(id=d.id, code=d.code, type=d.kind, status=d.status, lastSeen=d.last_seen)

@router.get("/health")
def health():
    return {"status": "healthy", "timestamp": int(time.time() * 1000)}

@router.post("/api/register", response_model=RegisterResponse)
def register(body: RegisterRequest, svc: RelayService = Depends(get_service)):
    code = svc.register(body.deviceId or "", body.type)
    return RegisterResponse(deviceId=body.deviceId, code=code)

@router.get("/api/devices", response_model=List[DeviceOut])
def list_devices(svc: RelayService = Depends(get_service)):
    return [_device_out(d) for d in svc.list_online()]

@router.get("/api/devices/{code}", response_model=FindResult, response_model_exclude_none=True)
def find_device(code: str, svc: RelayService = Depends(get_service)):
    d = svc.find_by_code(code)
    if d is None:
        return FindResult(found=False)
    return FindResult(found=True, device=_device_out(d))

@router.post("/api/send-command", response_model=CommandResponse)
def send_command(body: CommandRequest, svc: RelayService = Depends(get_service)):
    if body.code is None:
        raise InvalidInput("code is required")
    return CommandResponse(commandId=svc.send_command(body.code, body.command))

@router.get("/api/commands/{device_id}")
def poll_commands(device_id: str, svc: RelayService = Depends(get_service)) -> list[Any]:
    return svc.poll_commands(device_id)

@router.post("/api/response", response_model=PostResponseResult)
def post_response(body: dict[str, Any] = Body(...), svc: RelayService = Depends(get_service)):
    # everything except deviceId is the response payload
    device_id = body.pop("deviceId", None)
    return PostResponseResult(responseId=svc.post_response(device_id, body))

@router.get("/api/responses/{code}")
def read_responses(code: str, svc: RelayService = Depends(get_service)) -> list[dict]:
    return svc.read_responses(code)

@router.get("/api/stats")
def stats(svc: RelayService = Depends(get_service)):
    return svc.stats()

async def relay_error_handler(request: Request, exc: RelayError):
    if exc.status_code >= 500:
        log.warning("%s %s failed: %s", request.method, request.url.path, exc)
    body = ErrorOut(error=exc.kind, detail=str(exc))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())

def create_app(cfg: Settings = settings) -> FastAPI:
    app = FastAPI(title="Command Relay", version="0.1.0")
    add_cors(app, cfg.cors_origins)

    store = Store(cfg.database_url)
    service = RelayService.from_settings(store, cfg)
    sweeper = service.build_sweeper(cfg)
    app.state.store = store
    app.state.service = service
    app.state.sweeper = sweeper

    app.include_router(router)
    app.add_exception_handler(RelayError, relay_error_handler)

    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(level=cfg.log_level.upper())
        store.init_schema()
        sweeper.start()
        log.info("relay ready store=%s", store.engine.url.render_as_string(hide_password=True))

    @app.on_event("shutdown")
    async def on_shutdown():
        await sweeper.stop()
        store.dispose()

    return app

# engine creation is lazy: nothing connects or logs until startup
app = create_app()
