"""Node template catalog and pre-built workflow templates."""

from typing import Any, Dict, Iterable, List, Optional

from ..models.script import Condition, TriggerDescriptor, TriggerKind
from ..models.workflow import (
    NodeParameter,
    NodeTemplate,
    ParameterType,
    SelectOption,
    TemplateCategory,
)
from .exceptions import TemplateNotFoundError
from .logging import get_logger

logger = get_logger(__name__)


def _param(name: str, type: ParameterType = ParameterType.STRING, required: bool = False,
           default: Any = None, options: Optional[List[tuple]] = None) -> NodeParameter:
    return NodeParameter(
        name=name,
        type=type,
        required=required,
        default=default,
        options=[SelectOption(label=label, value=value) for label, value in options] if options else None,
    )


def _template(id: str, category: TemplateCategory, name: str, description: str, icon: str,
              inputs: Iterable[NodeParameter] = (), outputs: Iterable[NodeParameter] = (),
              config: Optional[Dict[str, Any]] = None) -> NodeTemplate:
    """Build a template whose default config starts from its input defaults."""
    inputs = list(inputs)
    default_config = {p.name: p.default for p in inputs if p.default is not None}
    default_config.update(config or {})
    return NodeTemplate(
        id=id,
        category=category,
        name=name,
        description=description,
        icon=icon,
        inputs=inputs,
        outputs=list(outputs),
        default_config=default_config,
    )


NUMBER = ParameterType.NUMBER
BOOLEAN = ParameterType.BOOLEAN
SELECT = ParameterType.SELECT


def default_templates() -> List[NodeTemplate]:
    """The built-in node templates, grouped by category."""
    return [
        # Triggers
        _template("trigger-stream-start", TemplateCategory.TRIGGER, "Stream Started",
                  "Triggers when stream starts", "play",
                  outputs=[_param("output")]),
        _template("trigger-donation", TemplateCategory.TRIGGER, "Donation Received",
                  "Triggers on donation", "donation",
                  outputs=[_param("amount", NUMBER, True), _param("donor", required=True), _param("message")],
                  config={"minAmount": 0}),
        _template("trigger-follower", TemplateCategory.TRIGGER, "New Follower",
                  "Triggers on new follower", "user",
                  outputs=[_param("username", required=True)]),
        _template("trigger-schedule", TemplateCategory.TRIGGER, "Schedule",
                  "Triggers on schedule (cron)", "clock",
                  outputs=[_param("timestamp", required=True)],
                  config={"cron": "0 * * * *"}),

        # Actions
        _template("action-switch-scene", TemplateCategory.ACTION, "Switch Scene",
                  "Change active scene", "scene",
                  inputs=[_param("sceneName", required=True)],
                  outputs=[_param("success", BOOLEAN, True)]),
        _template("action-play-sound", TemplateCategory.ACTION, "Play Sound",
                  "Play sound effect", "sound",
                  inputs=[_param("soundId", required=True), _param("volume", NUMBER, default=1.0)],
                  outputs=[_param("played", BOOLEAN, True)]),
        _template("action-show-alert", TemplateCategory.ACTION, "Show Alert",
                  "Display on-screen alert", "bell",
                  inputs=[_param("title", required=True), _param("message"),
                          _param("duration", NUMBER, default=5)]),
        _template("action-tts", TemplateCategory.ACTION, "Text to Speech",
                  "Speak text message", "speech",
                  inputs=[_param("text", required=True), _param("voice")]),
        _template("action-send-tweet", TemplateCategory.ACTION, "Send Tweet",
                  "Post to Twitter", "bird",
                  inputs=[_param("message", required=True)],
                  outputs=[_param("tweetId")]),
        _template("action-create-clip", TemplateCategory.ACTION, "Create Clip",
                  "Auto-create stream clip", "scissors",
                  inputs=[_param("duration", NUMBER, default=30), _param("title")],
                  outputs=[_param("clipId", required=True)]),
        _template("action-lower-third", TemplateCategory.ACTION, "Show Lower Third",
                  "Display lower third", "tv",
                  inputs=[_param("title", required=True), _param("subtitle"),
                          _param("duration", NUMBER, default=10)]),

        # Logic
        _template("logic-condition", TemplateCategory.LOGIC, "If/Else",
                  "Conditional branching", "branch",
                  inputs=[_param("value", required=True),
                          _param("operator", SELECT, True, options=[
                              ("Equals", "equals"), ("Not equals", "not-equals"),
                              ("Greater than", "greater"),
                              ("Less than", "less"), ("Contains", "contains"),
                          ]),
                          _param("compare", required=True)],
                  outputs=[_param("true", BOOLEAN, True), _param("false", BOOLEAN, True)]),
        _template("logic-delay", TemplateCategory.LOGIC, "Delay",
                  "Wait for specified time", "timer",
                  inputs=[_param("seconds", NUMBER, True, default=5)],
                  outputs=[_param("output")]),
        _template("logic-loop", TemplateCategory.LOGIC, "Loop",
                  "Repeat actions", "repeat",
                  inputs=[_param("count", NUMBER, True, default=3), _param("delay", NUMBER, default=1)],
                  outputs=[_param("iteration", NUMBER, True)]),

        # Data
        _template("data-variable", TemplateCategory.DATA, "Set Variable",
                  "Store data in variable", "box",
                  inputs=[_param("name", required=True), _param("value", required=True)],
                  outputs=[_param("output", required=True)]),
        _template("data-random", TemplateCategory.DATA, "Random Number",
                  "Generate random number", "dice",
                  inputs=[_param("min", NUMBER, True, default=1), _param("max", NUMBER, True, default=100)],
                  outputs=[_param("value", NUMBER, True)]),
        _template("data-http", TemplateCategory.DATA, "HTTP Request",
                  "Make API call", "globe",
                  inputs=[_param("url", required=True),
                          _param("method", SELECT, True, options=[("GET", "GET"), ("POST", "POST")])],
                  outputs=[_param("response", required=True)]),
    ]


# Script command -> node template used when compiling scripts to workflows
COMMAND_TEMPLATE_MAP: Dict[str, str] = {
    "switchScene": "action-switch-scene",
    "playSound": "action-play-sound",
    "showAlert": "action-show-alert",
    "speak": "action-tts",
    "tweet": "action-send-tweet",
    "createClip": "action-create-clip",
    "showLowerThird": "action-lower-third",
    "wait": "logic-delay",
}


# Pre-built workflows offered by create_from_template
WORKFLOW_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Welcome New Followers",
        "description": "Show alert and speak when someone follows",
        "tags": ["followers", "alerts"],
        "trigger": TriggerDescriptor(kind=TriggerKind.EVENT, event_name="follower"),
    },
    {
        "name": "Big Donation Celebration",
        "description": "Special effects for donations over $100",
        "tags": ["donations", "effects"],
        "trigger": TriggerDescriptor(
            kind=TriggerKind.EVENT,
            event_name="donation",
            condition=Condition(left="amount", operator=">", right="100"),
        ),
    },
    {
        "name": "Hourly Scene Rotation",
        "description": "Automatically rotate scenes every hour",
        "tags": ["schedule", "scenes"],
        "trigger": TriggerDescriptor(kind=TriggerKind.SCHEDULE, schedule_expr="0 * * * *"),
    },
]


class NodeTemplateCatalog:
    """Read-only (at run time) catalog of node templates keyed by id."""

    def __init__(self, templates: Optional[Iterable[NodeTemplate]] = None):
        self._templates: Dict[str, NodeTemplate] = {}
        for template in (default_templates() if templates is None else templates):
            self.register(template)

    def register(self, template: NodeTemplate) -> None:
        if template.id in self._templates:
            logger.warning(f"Replacing node template '{template.id}'")
        self._templates[template.id] = template

    def find(self, template_id: str) -> Optional[NodeTemplate]:
        return self._templates.get(template_id)

    def get_template(self, template_id: str) -> NodeTemplate:
        """Return a template or raise TemplateNotFoundError."""
        template = self.find(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def list_templates(self, category: Optional[TemplateCategory] = None) -> List[NodeTemplate]:
        templates = list(self._templates.values())
        if category is not None:
            templates = [t for t in templates if t.category == category]
        return templates

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)
