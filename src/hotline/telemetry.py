"""Telemetry - 统一日志和指标入口

提供统一的日志工厂和指标 facade，便于观测性追踪。

日志格式: [module] msg
指标示例: ledger.inserts, broadcast.sent, broadcast.skipped, dispatch.sounds
"""

import logging

from .config import LOG_LEVEL

# 全局日志配置
_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    """配置根 logger（入口调用一次）

    Args:
        level: 日志级别，None 使用 LOG_LEVEL
    """
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=_LOG_FORMAT)


def get_logger(name: str) -> logging.Logger:
    """获取带模块前缀的 logger

    Args:
        name: 模块名（通常使用 __name__）

    Returns:
        Logger 实例
    """
    return logging.getLogger(name)


class Metrics:
    """指标收集 facade

    提供简单的计数器和 gauge 接口，当前实现为内存存储。
    """

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._gauges: dict[str, float] = {}

    def inc(self, name: str, labels: dict[str, str] | None = None, value: int = 1) -> None:
        """递增计数器

        Args:
            name: 指标名（如 "broadcast.sent"）
            labels: 可选标签（如 {"hook_type": "Stop"}）
            value: 递增值，默认 1
        """
        key = self._make_key(name, labels)
        self._counters[key] = self._counters.get(key, 0) + value

    def gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        """设置 gauge 值"""
        key = self._make_key(name, labels)
        self._gauges[key] = value

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        """获取计数器值（用于测试）"""
        return self._counters.get(self._make_key(name, labels), 0)

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        """获取 gauge 值（用于测试）"""
        return self._gauges.get(self._make_key(name, labels), 0.0)

    def reset(self) -> None:
        """重置所有指标（用于测试）"""
        self._counters.clear()
        self._gauges.clear()

    def _make_key(self, name: str, labels: dict[str, str] | None) -> str:
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def snapshot(self) -> dict[str, dict]:
        """当前所有指标（/api/health 输出）"""
        return {"counters": dict(self._counters), "gauges": dict(self._gauges)}


# 全局指标实例
metrics = Metrics()
