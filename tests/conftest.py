"""Pytest 配置"""

import pytest

from hotline.runtime import bootstrap
from hotline.runtime.bootstrap import _reset_for_testing
from hotline.telemetry import metrics


@pytest.fixture(autouse=True)
def reset_metrics():
    """每次测试前重置指标"""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def components(tmp_path):
    """在临时目录中构造运行时组件"""
    _reset_for_testing()
    project_root = tmp_path / "project"
    project_root.mkdir()
    result = bootstrap(
        home=tmp_path / "home",
        claude_dir=tmp_path / "claude",
        project_root=project_root,
    )
    yield result
    _reset_for_testing()
