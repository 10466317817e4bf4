"""Parsing of model output into thoughts and actions."""

import json
import re
from dataclasses import dataclass, field

from ..logging_config import get_logger
from ..models import Action, ActionType

logger = get_logger(__name__)

# Full-width colon is accepted as well as ':'
_SEP = r"\s*[:：]\s*"

_THOUGHT_RE = re.compile(rf"^thought{_SEP}(.*)$", re.IGNORECASE)
_ACTION_PREFIX_RE = re.compile(rf"^action{_SEP}", re.IGNORECASE)
_FINISH_JSON_RE = re.compile(rf"^finish{_SEP}(\{{.+\}})$", re.IGNORECASE)
_FINISH_TEXT_RE = re.compile(rf"^finish{_SEP}(?!\{{)(.+)$", re.IGNORECASE)
_THINK_RE = re.compile(rf"^think{_SEP}(.+)$", re.IGNORECASE)
_CALL_JSON_RE = re.compile(rf"^(tool|skill){_SEP}([\w.-]+)\s*\((\{{.*\}})\)\s*$", re.IGNORECASE)
_CALL_ARGS_RE = re.compile(rf"^(tool|skill){_SEP}([\w.-]+)\s*\(([^)]*)\)\s*$", re.IGNORECASE)


@dataclass
class ParsedOutput:
    """Thought and actions extracted from one model response."""

    thought: str
    actions: list[Action] = field(default_factory=list)


class ActionParseError(ValueError):
    """An action is structurally invalid."""


def validate_action(action: Action) -> Action:
    """Check the action before it is dispatched."""
    if action.executable and not action.name.strip():
        raise ActionParseError(f"{action.type.value} action requires a name")
    if action.type == ActionType.FINISH and "answer" not in action.parameters:
        raise ActionParseError("finish action requires an answer")
    return action


def parse_parameters(text: str) -> dict:
    """Parse "key=value, key2=value2" into a dict with scalar coercion."""
    params: dict = {}
    if not text.strip():
        return params

    for pair in text.split(","):
        key, sep, value = pair.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key or not value:
            continue
        if value == "true":
            params[key] = True
        elif value == "false":
            params[key] = False
        else:
            params[key] = _number_or_text(value)
    return params


def _number_or_text(value: str):
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value.strip("\"'")


def _from_json_line(line: str) -> Action | None:
    if not line.startswith("{"):
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("action"), dict):
        return None

    raw = data["action"]
    try:
        action_type = ActionType(str(raw.get("type", "think")).lower())
    except ValueError:
        action_type = ActionType.THINK
    parameters = raw.get("parameters")
    return Action(
        type=action_type,
        name=str(raw.get("name") or action_type.value),
        parameters=parameters if isinstance(parameters, dict) else {},
    )


def parse_action_line(line: str) -> Action | None:
    """Parse a single action line; None when the line is not an action."""
    line = _ACTION_PREFIX_RE.sub("", line.strip())
    if not line:
        return None

    action = _from_json_line(line)
    if action is not None:
        return action

    match = _FINISH_JSON_RE.match(line)
    if match:
        try:
            params = json.loads(match.group(1))
            if isinstance(params, dict):
                return Action(type=ActionType.FINISH, name="finish", parameters=params)
        except json.JSONDecodeError:
            pass

    match = _FINISH_TEXT_RE.match(line)
    if match:
        return Action(
            type=ActionType.FINISH, name="finish", parameters={"answer": match.group(1).strip()}
        )

    match = _CALL_JSON_RE.match(line)
    if match:
        try:
            params = json.loads(match.group(3))
            if isinstance(params, dict):
                return Action(
                    type=ActionType(match.group(1).lower()), name=match.group(2), parameters=params
                )
        except json.JSONDecodeError:
            pass

    match = _CALL_ARGS_RE.match(line)
    if match:
        return Action(
            type=ActionType(match.group(1).lower()),
            name=match.group(2),
            parameters=parse_parameters(match.group(3)),
        )

    match = _THINK_RE.match(line)
    if match:
        body = match.group(1).strip()
        thought = body
        if body.startswith("{"):
            try:
                thought = str(json.loads(body).get("thought", body))
            except (json.JSONDecodeError, AttributeError):
                pass
        return Action(type=ActionType.THINK, name="think", parameters={"thought": thought})

    return None


def parse_response(text: str) -> ParsedOutput:
    """Split a model response into its thought and validated actions.

    Lines that do not parse, or fail validation, are skipped. When no
    action survives the whole response becomes a think action.
    """
    thoughts: list[str] = []
    actions: list[Action] = []

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        match = _THOUGHT_RE.match(line)
        if match:
            thoughts.append(match.group(1).strip())
            continue

        action = parse_action_line(line)
        if action is None:
            continue
        try:
            actions.append(validate_action(action))
        except ActionParseError as e:
            logger.debug("Skipping invalid action %r: %s", line, e)

    thought = " ".join(t for t in thoughts if t) or text.strip()
    if not actions:
        actions.append(
            Action(type=ActionType.THINK, name="think", parameters={"thought": text.strip()})
        )
    return ParsedOutput(thought=thought, actions=actions)
