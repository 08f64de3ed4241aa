"""Web 服务模块"""

from .app import create_app
from .server import WebServer

__all__ = ["create_app", "WebServer"]
