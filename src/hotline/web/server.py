"""Web 服务器"""

from datetime import date
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..config import (
    DEFAULT_QUERY_LIMIT,
    MAX_QUERY_LIMIT,
    MAX_TIMEOUT_SECONDS,
    MIN_TIMEOUT_SECONDS,
    SOUND_SLOTS,
)
from ..errors import InvalidUploadError, SoundNotFoundError, StorageError
from ..hooks import reconciler
from ..models import HOOK_TYPES, HookType
from ..runtime import RuntimeComponents
from ..store import SaveTarget
from ..telemetry import get_logger, metrics

logger = get_logger(__name__)

RECENT_LOGS_ON_INDEX = 20


class SaveHooksRequest(BaseModel):
    """直接保存 hooks 文档"""

    hooks: dict[str, Any]
    target: SaveTarget = SaveTarget.GLOBAL


class ApplyRequest(BaseModel):
    """编译 UI 配置并写入 settings.json"""

    target: SaveTarget = SaveTarget.GLOBAL
    baseUrl: str | None = None  # 日志命令回调地址，默认当前请求的地址


class EntryPatch(BaseModel):
    """单个配置项的字段更新（未出现的字段保持不变）"""

    enabled: bool | None = None
    sounds: list[str] | None = Field(default=None, max_length=SOUND_SLOTS)
    notifications: bool | None = None
    timeoutSeconds: int | None = Field(default=None, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS)
    matcher: str | None = None


class HookEntryModel(BaseModel):
    """规范化后的单个配置项（保存整份文档时逐项校验）"""

    model_config = ConfigDict(extra="allow")

    enabled: bool
    sounds: list[str] = Field(max_length=SOUND_SLOTS)
    notifications: bool
    timeoutSeconds: int = Field(ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS)
    matcher: str


_UI_CONFIG_ADAPTER = TypeAdapter(dict[str, list[HookEntryModel]])


class WebServer:
    """HTTP + WebSocket 服务器"""

    def __init__(self, components: RuntimeComponents):
        self.app = FastAPI(title="Hotline")
        self.components = components

        templates_dir = Path(__file__).parent.parent / "templates"
        self.templates = Jinja2Templates(directory=str(templates_dir))

        self._setup_error_handlers()
        self._setup_routes()
        components.receiver.setup_routes(self.app)

    # === 配置读写 ===

    def _consumer_hooks_or_empty(self) -> dict:
        """全局 hooks，settings.json 损坏时按空处理（只用于生成默认 UI 配置）"""
        try:
            return self.components.settings_store.read_hooks(SaveTarget.GLOBAL)
        except StorageError:
            logger.warning("[WebServer] settings.json 不可读，默认配置不参考现有 hooks")
            return {}

    def load_ui_config(self) -> dict[str, list[dict]]:
        return self.components.ui_store.load(self._consumer_hooks_or_empty())

    def _edit_entries(self, hook_type: HookType, index: int | None, edit) -> dict:
        """读取 -> 编辑 -> 保存，返回该类型的配置项列表"""
        config = self.load_ui_config()
        entries = config.get(hook_type.value, [])
        if index is not None and not 0 <= index < len(entries):
            raise HTTPException(status_code=404, detail="Configuration entry not found")

        saved = self.components.ui_store.save(edit(config))
        return {"hookType": hook_type.value, "entries": saved.get(hook_type.value, [])}

    # === 路由 ===

    def _setup_error_handlers(self):
        @self.app.exception_handler(StorageError)
        async def storage_error(request: Request, exc: StorageError):
            return JSONResponse(status_code=500, content={"error": str(exc)})

        @self.app.exception_handler(SoundNotFoundError)
        async def sound_not_found(request: Request, exc: SoundNotFoundError):
            return JSONResponse(status_code=404, content={"error": "File not found"})

    def _setup_routes(self):
        app = self.app
        components = self.components

        @app.get("/", response_class=HTMLResponse)
        async def index(request: Request):
            return self.templates.TemplateResponse(
                request,
                "index.html",
                {
                    "hook_types": HOOK_TYPES,
                    "config": self.load_ui_config(),
                    "logs": components.ledger.query(limit=RECENT_LOGS_ON_INDEX),
                    "sounds": components.sounds.list_sounds(),
                    "clients": components.broadcaster.connection_count,
                },
            )

        @app.get("/api/health")
        async def health():
            return {
                "status": "ok",
                "clients": components.broadcaster.connection_count,
                "logs": components.ledger.count(),
                "metrics": metrics.snapshot(),
            }

        # --- settings.json hooks ---

        @app.get("/api/hooks")
        async def get_hooks(target: SaveTarget = SaveTarget.GLOBAL):
            """读取 settings.json 中的 hooks"""
            return components.settings_store.read_hooks(target)

        @app.post("/api/hooks")
        async def save_hooks(request: SaveHooksRequest):
            """替换 settings.json 中的 hooks（保留其他键）"""
            path = components.settings_store.write_hooks(request.hooks, request.target)
            return {"success": True, "path": str(path)}

        @app.post("/api/hooks/apply")
        async def apply_hooks(body: ApplyRequest, request: Request):
            """编译当前 UI 配置并写入 settings.json"""
            base_url = body.baseUrl or str(request.base_url)
            hooks = reconciler.compile_hooks(self.load_ui_config(), base_url)
            path = components.settings_store.write_hooks(hooks, body.target)
            return {"success": True, "path": str(path), "hooks": hooks}

        @app.get("/api/hooks/preview")
        async def preview_hooks(request: Request):
            """预览编译结果"""
            return {"hooks": reconciler.compile_hooks(self.load_ui_config(), str(request.base_url))}

        # --- UI 配置 ---

        @app.get("/api/hook-ui-config")
        async def get_ui_config():
            return self.load_ui_config()

        @app.post("/api/hook-ui-config")
        async def save_ui_config(config: dict[str, Any]):
            """规范化后校验再保存，超时越界时整份文档拒绝"""
            canonical = reconciler.normalize(config)
            try:
                _UI_CONFIG_ADAPTER.validate_python(canonical)
            except ValidationError as e:
                raise RequestValidationError(e.errors(include_url=False))
            return components.ui_store.save(canonical)

        @app.post("/api/hook-ui-config/{hook_type}/entries")
        async def add_entry(hook_type: HookType):
            return self._edit_entries(
                hook_type, None, lambda config: reconciler.add_entry(config, hook_type)
            )

        @app.delete("/api/hook-ui-config/{hook_type}/entries/{index}")
        async def remove_entry(hook_type: HookType, index: int):
            return self._edit_entries(
                hook_type, index, lambda config: reconciler.remove_entry(config, hook_type, index)
            )

        @app.patch("/api/hook-ui-config/{hook_type}/entries/{index}")
        async def update_entry(hook_type: HookType, index: int, patch: EntryPatch):
            def edit(config):
                for field, value in patch.model_dump(exclude_unset=True).items():
                    config = reconciler.update_field(config, hook_type, index, field, value)
                return config

            return self._edit_entries(hook_type, index, edit)

        # --- 账本 ---

        @app.get("/api/logs")
        async def get_logs(
            hookType: str | None = None,
            sessionId: str | None = None,
            keyword: str | None = None,
            limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
            offset: int = Query(0, ge=0),
        ):
            entries = components.ledger.query(hookType, sessionId, keyword, limit, offset)
            return [entry.to_dict() for entry in entries]

        @app.get("/api/logs/export")
        async def export_logs(
            hookType: str | None = None,
            sessionId: str | None = None,
            keyword: str | None = None,
            limit: int = Query(MAX_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
        ):
            csv_text = components.ledger.export_csv(hookType, sessionId, keyword, limit)
            filename = f"hotline-logs-{date.today().isoformat()}.csv"
            return Response(
                content=csv_text,
                media_type="text/csv",
                headers={"Content-Disposition": f'attachment; filename="{filename}"'},
            )

        @app.get("/api/logs/{log_id}")
        async def get_log(log_id: int):
            entry = components.ledger.get(log_id)
            if entry is None:
                raise HTTPException(status_code=404, detail="Log entry not found")
            return entry.to_dict()

        # --- 声音 ---

        @app.get("/api/sounds")
        async def list_sounds():
            return [asset.to_dict() for asset in components.sounds.list_sounds()]

        @app.post("/api/sounds")
        async def upload_sounds(sound: list[UploadFile] = File(...)):
            """上传一个或多个声音文件，不合法的文件单独拒绝"""
            uploaded, rejected = [], []
            for upload in sound:
                filename = upload.filename or ""
                try:
                    # 先按声明的大小校验，超限文件不读入内存
                    components.sounds.validate(filename, upload.content_type, upload.size or 0)
                    data = await upload.read(components.sounds.max_bytes + 1)
                    asset = components.sounds.save(filename, upload.content_type, data)
                    uploaded.append(asset.to_dict())
                except InvalidUploadError as e:
                    logger.info(f"[WebServer] 拒绝上传 {e}")
                    rejected.append({"filename": filename, "error": e.reason})

            status_code = 200 if uploaded else 400
            return JSONResponse(
                status_code=status_code,
                content={"success": bool(uploaded), "uploaded": uploaded, "rejected": rejected},
            )

        @app.delete("/api/sounds/{filename}")
        async def delete_sound(filename: str):
            components.sounds.delete(filename)
            return {"success": True}

        @app.get("/api/sounds/play/{filename}")
        async def play_sound(filename: str):
            return FileResponse(components.sounds.path_for(filename))

        # --- 实时通道 ---

        @app.websocket("/ws")
        async def websocket_endpoint(websocket: WebSocket):
            # 先登记再握手，客户端收到 accept 时已能接收广播
            components.broadcaster.connect(websocket)
            try:
                await websocket.accept()
                while True:
                    # 客户端不需要发送任何内容，只用于检测断开
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                components.broadcaster.disconnect(websocket)
