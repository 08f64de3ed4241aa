"""FastAPI 应用初始化"""

import asyncio

import uvicorn

from .. import config
from ..runtime import RuntimeComponents, bootstrap
from ..telemetry import get_logger, setup_logging
from .server import WebServer

logger = get_logger(__name__)


def create_app(components: RuntimeComponents | None = None) -> WebServer:
    """创建 Web 应用

    Args:
        components: 已构造的组件，None 时调用 bootstrap()
    """
    return WebServer(components or bootstrap())


async def start_server(host: str = config.HOST, port: int = config.PORT) -> None:
    """启动服务器"""
    server = create_app()

    uvicorn_config = uvicorn.Config(server.app, host=host, port=port, log_level=config.LOG_LEVEL.lower())
    uvicorn_server = uvicorn.Server(uvicorn_config)

    logger.info(f"Hotline backend running on http://{host}:{port}")
    print(f"Hotline Web Server starting at http://localhost:{port}")

    try:
        await uvicorn_server.serve()
    finally:
        server.components.close()


def main(host: str = config.HOST, port: int = config.PORT) -> None:
    """入口函数"""
    setup_logging()
    try:
        asyncio.run(start_server(host, port))
    except KeyboardInterrupt:
        print("\nServer stopped")
