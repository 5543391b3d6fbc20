"""Plugins shipped with aiMate."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from aimate.config import AimateConfig
from aimate.llm.client import CompletionBackend
from aimate.plugins.base import Plugin
from aimate.plugins.builtin.code_generator import CodeGeneratorPlugin
from aimate.plugins.builtin.web_search import WebSearchPlugin
from aimate.safety.audit_log import SafetyAuditLog
from aimate.safety.plugin import MentalHealthSafetyPlugin

logger = logging.getLogger(__name__)

__all__ = ["CodeGeneratorPlugin", "WebSearchPlugin", "default_plugin_factories"]


def default_plugin_factories(
    config: AimateConfig,
    audit_log: Optional[SafetyAuditLog] = None,
    backend: Optional[CompletionBackend] = None,
) -> list[Callable[[], Plugin]]:
    """Return factories for the plugins enabled in *config*, in config order.

    The safety plugin records to *audit_log*, or to ``safety.audit_dir``
    when that is set.  The code generator refactors through *backend*.
    """

    def safety() -> Plugin:
        audit = audit_log
        if audit is None and config.safety.audit_dir:
            audit = SafetyAuditLog(Path(config.safety.audit_dir))
        return MentalHealthSafetyPlugin(config.safety, audit_log=audit)

    available: dict[str, Callable[[], Plugin]] = {
        MentalHealthSafetyPlugin.id: safety,
        WebSearchPlugin.id: WebSearchPlugin,
        CodeGeneratorPlugin.id: lambda: CodeGeneratorPlugin(backend=backend),
    }
    factories = []
    for plugin_id in config.plugins.enabled:
        factory = available.get(plugin_id)
        if factory is None:
            logger.warning("Unknown plugin in config: %s", plugin_id)
            continue
        factories.append(factory)
    return factories
