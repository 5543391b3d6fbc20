"""Mental-health safety monitor.

Runs first in the interception pipeline.  Before a user message reaches the
model it is checked for crisis signals: critical messages are answered with
crisis contacts instead of being sent, elevated ones are forwarded with
safety guidance prepended.  After the model replies, harmful patterns
(victim-blaming, gaslighting, minimisation) cause the reply to be replaced.

Escalation state is kept per conversation id, so one plugin instance can
serve many conversations concurrently.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from aimate.config import SafetySettings, parse_bool, parse_sensitivity
from aimate.errors import ConfigError
from aimate.models.chat import Message, Role
from aimate.plugins.base import Capability, MessageInterceptor, Plugin, UIExtension
from aimate.plugins.models import (
    ConversationContext,
    InputExtension,
    InterceptResult,
    MessageAction,
    PluginSettings,
    SettingField,
    SettingFieldType,
)
from aimate.safety.audit_log import SafetyAuditLog
from aimate.safety.detector import CrisisDetector, HarmDetector
from aimate.safety.models import (
    CrisisAnalysis,
    CrisisResources,
    DistressLevel,
    EscalationState,
    Sensitivity,
)
from aimate.safety.prompts import (
    render_crisis_intervention,
    render_harm_block,
    render_safety_preamble,
)
from aimate.safety.resources import CrisisResourceDatabase

logger = logging.getLogger(__name__)

PLUGIN_ID = "mental-health-safety"


class MentalHealthSafetyPlugin(Plugin, MessageInterceptor, UIExtension):
    id = PLUGIN_ID
    name = "Mental Health Safety Monitor"
    description = "Detects and intervenes in mental health crises"
    version = "1.0.0"
    author = "aiMate Team"
    icon = "HealthAndSafety"
    priority = 0
    capabilities = Capability.MESSAGE_INTERCEPTOR | Capability.UI_EXTENSION

    def __init__(
        self,
        settings: Optional[SafetySettings] = None,
        resources: Optional[CrisisResourceDatabase] = None,
        audit_log: Optional[SafetyAuditLog] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings or SafetySettings()
        self._resources = resources or CrisisResourceDatabase(self.settings.region)
        self._crisis = CrisisDetector(
            window=timedelta(minutes=self.settings.escalation_window_minutes),
            threshold=self.settings.escalation_threshold,
            clock=clock,
        )
        self._harm = HarmDetector()
        self._audit = audit_log
        self._escalation: dict[str, EscalationState] = {}
        self._lock = threading.Lock()

    # -- lifecycle -----------------------------------------------------------

    async def initialize(self) -> None:
        self._resources.load(self.settings.resources_file or None)
        logger.info(
            "Safety monitoring active. Crisis resources loaded for %d regions.",
            len(self._resources.regions),
        )

    async def dispose(self) -> None:
        with self._lock:
            self._escalation.clear()

    # -- state ---------------------------------------------------------------

    def escalation_state(self, conversation_id: str) -> EscalationState:
        with self._lock:
            return self._escalation.setdefault(conversation_id, EscalationState())

    def reset_conversation(self, conversation_id: str) -> None:
        with self._lock:
            self._escalation.pop(conversation_id, None)

    def crisis_resources(self, region: Optional[str] = None) -> tuple[CrisisResources, bool]:
        return self._resources.lookup(region or self.settings.region)

    def _resolve_settings(self, context: ConversationContext) -> tuple[str, Sensitivity, bool]:
        user = context.user_settings
        region = str(user.get("region") or self.settings.region)
        sensitivity = self.settings.sensitivity
        auto_intervene = self.settings.auto_intervene
        try:
            if user.get("sensitivity"):
                sensitivity = parse_sensitivity(user["sensitivity"])
            if "auto_intervene" in user:
                auto_intervene = parse_bool(user["auto_intervene"], "auto_intervene")
        except ConfigError as exc:
            logger.warning("Ignoring invalid safety user setting: %s", exc)
        return region, sensitivity, auto_intervene

    def _record(self, action: str, context: ConversationContext, details: dict[str, Any]) -> None:
        if self._audit is not None:
            self._audit.record(action, context.conversation_id, self.id, details)

    # -- interception --------------------------------------------------------

    async def on_before_send(
        self, message: Message, context: ConversationContext
    ) -> InterceptResult:
        region, sensitivity, auto_intervene = self._resolve_settings(context)
        state = self.escalation_state(context.conversation_id)
        with self._lock:
            analysis = self._crisis.analyze(message.content, state, sensitivity)
            consecutive = state.consecutive_distress_messages

        metadata: dict[str, Any] = {
            "distress_level": analysis.level.label,
            "triggers": list(analysis.triggers),
            "consecutive_count": consecutive,
        }

        if analysis.is_critical:
            resources, matched = self._resources.lookup(region)
            logger.warning(
                "Critical distress in conversation %s (triggers: %s)",
                context.conversation_id,
                ", ".join(analysis.triggers),
            )
            metadata["crisis_region"] = resources.code
            if auto_intervene:
                self._record("crisis_intervention", context, metadata)
                reply = Message(
                    role=Role.ASSISTANT,
                    content=render_crisis_intervention(resources, matched),
                )
                return InterceptResult.block("Crisis intervention activated", reply, metadata)
            self._record("distress_flagged", context, metadata)
            return InterceptResult.rewrite(
                self._with_preamble(message, analysis, resources), metadata
            )

        if analysis.is_elevated:
            self._record("distress_flagged", context, metadata)
            return InterceptResult.rewrite(self._with_preamble(message, analysis), metadata)

        if analysis.level is DistressLevel.MILD:
            return InterceptResult(proceed=True, modified_message=message, metadata=metadata)

        return InterceptResult(proceed=True, modified_message=message)

    @staticmethod
    def _with_preamble(
        message: Message,
        analysis: CrisisAnalysis,
        resources: Optional[CrisisResources] = None,
    ) -> Message:
        preamble = render_safety_preamble(analysis, resources)
        return message.with_content(f"{preamble}\n\n{message.content}")

    async def on_after_receive(
        self, message: Message, context: ConversationContext
    ) -> InterceptResult:
        harm = self._harm.analyze(message.content)
        if not harm.is_harmful:
            return InterceptResult.passthrough()

        logger.warning(
            "Blocked harmful response in conversation %s (%s)",
            context.conversation_id,
            "; ".join(harm.patterns),
        )
        metadata: dict[str, Any] = {
            "blocked_response": True,
            "harm_patterns": list(harm.patterns),
            "original_blocked": message.content,
        }
        self._record("response_blocked", context, metadata)
        return InterceptResult.rewrite(message.with_content(render_harm_block(harm)), metadata)

    # -- UI ------------------------------------------------------------------

    async def _open_crisis_resources(self, message: Optional[Message] = None) -> None:
        logger.info("Crisis resources requested")

    def get_message_actions(self, message: Message) -> Iterable[MessageAction]:
        if message.role != Role.USER:
            return []
        return [
            MessageAction(
                id="crisis-help",
                label="Get Crisis Support",
                icon="LocalHospital",
                tooltip="Access immediate crisis resources",
                on_click=self._open_crisis_resources,
                show_on_user_messages=True,
                show_on_assistant_messages=False,
            )
        ]

    def get_input_extensions(self) -> Iterable[InputExtension]:
        return [
            InputExtension(
                id="crisis-resources",
                icon="ContactSupport",
                tooltip="Crisis support resources",
                on_click=self._open_crisis_resources,
                order=100,
            )
        ]

    def get_settings_ui(self) -> Optional[PluginSettings]:
        return PluginSettings(
            title="Mental Health Safety",
            fields=[
                SettingField(
                    key="region",
                    label="Your Region",
                    type=SettingFieldType.DROPDOWN,
                    default_value=self.settings.region,
                    options=self._resources.regions or [self.settings.region],
                ),
                SettingField(
                    key="sensitivity",
                    label="Detection Sensitivity",
                    type=SettingFieldType.DROPDOWN,
                    default_value=self.settings.sensitivity.value,
                    options=[s.value for s in Sensitivity],
                ),
                SettingField(
                    key="auto_intervene",
                    label="Auto-intervene on critical signals",
                    type=SettingFieldType.BOOLEAN,
                    default_value=self.settings.auto_intervene,
                ),
            ],
        )
