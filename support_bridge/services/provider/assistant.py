"""Assistant configuration for ad hoc calls."""
import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_TEMPLATE_FILE = Path(__file__).parent / "data" / "assistant.yaml"

_template_cache: Dict[Path, Dict[str, Any]] = {}


def load_assistant_template(template_file: Optional[str] = None) -> Dict[str, Any]:
    """Load the assistant template YAML (cached per file)."""
    path = Path(template_file) if template_file else DEFAULT_TEMPLATE_FILE
    if path not in _template_cache:
        with open(path, "r") as f:
            _template_cache[path] = yaml.safe_load(f) or {}
    return copy.deepcopy(_template_cache[path])


def get_system_prompt(help_request: str, template: Optional[Dict[str, Any]] = None) -> str:
    """Render the system prompt for a help request."""
    template = template or load_assistant_template()
    return template["systemPrompt"].replace("{help_request}", help_request)


def build_assistant_config(
    help_request: str,
    server_url: Optional[str] = None,
    template: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build a provider assistant configuration for one help request.

    Args:
        help_request: What the agent should ask for
        server_url: Webhook URL the provider should report events to
        template: Pre-loaded template (defaults to the bundled YAML)

    Returns:
        Assistant config dict in the provider's schema
    """
    template = template or load_assistant_template()
    system_prompt = get_system_prompt(help_request, template)

    model = dict(template.get("model") or {})
    model["messages"] = [{"role": "system", "content": system_prompt}]

    config: Dict[str, Any] = {
        "name": template.get("name", "Support Bridge Agent"),
        "model": model,
        "voice": template.get("voice"),
        "firstMessage": template.get("firstMessage"),
        "endCallMessage": template.get("endCallMessage"),
        "endCallPhrases": template.get("endCallPhrases", []),
        "recordingEnabled": template.get("recordingEnabled", True),
        "maxDurationSeconds": template.get("maxDurationSeconds", 1800),
        "metadata": {"helpRequest": help_request},
    }
    if server_url:
        config["server"] = {"url": server_url}
    return config


def build_assistant_overrides(help_request: str) -> Dict[str, Any]:
    """Overrides passed when reusing a pre-provisioned assistant."""
    return {"variableValues": {"helpRequest": help_request}}
