"""Hook 系统 - 配置协调与事件接收

模块结构：
- reconciler: UI 配置规范化、编辑、编译为 settings.json hooks
- receiver: HookReceiver HTTP 接收器（写账本 + 广播）
"""

from .reconciler import (
    add_entry,
    compile_hooks,
    normalize,
    remove_entry,
    set_sound,
    update_field,
)
from .receiver import HookReceiver

__all__ = [
    "normalize",
    "add_entry",
    "remove_entry",
    "update_field",
    "set_sound",
    "compile_hooks",
    "HookReceiver",
]
