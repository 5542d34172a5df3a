from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

import requests

from .actions import ActionParseError, Finish, UIAction, action_from_dict, describe
from .config import DEFAULT_MODEL
from .debug_log import DEBUG_LOG
from .snapshot import UISnapshot

try:
    from google.adk.agents import LlmAgent
except Exception as exc:  # noqa: BLE001
    raise ImportError(
        "google-adk is required. Install with `pip install google-adk`."
    ) from exc

TAG = "Planner"

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OLLAMA_URL = "http://localhost:11434/api/generate"

PLANNER_INSTRUCTION = (
    "You are an Android UI automation assistant. You receive the interactive elements of the "
    "current screen as a JSON array (0-based \"index\") and a user command.\n"
    "Respond ONLY with a JSON array of actions, or a single JSON object for the finish action.\n"
    "Each action is a JSON object with the fields:\n"
    "- \"type\": one of \"click\", \"type\", \"scroll\", \"swipe\", \"home\", \"back\", \"recent\", \"finish\".\n"
    "- \"elementIndex\": (int, optional) index of the element to act on.\n"
    "- \"text\": (string, optional) text to enter for \"type\" actions.\n"
    "- \"x\", \"y\": (int, optional) screen coordinates when no element index applies.\n"
    "- \"direction\": (string, optional) \"up\", \"down\", \"left\" or \"right\" for scroll and swipe.\n"
    "If the command is already accomplished on the current screen, respond with exactly {\"type\":\"finish\"}.\n"
    "Do not add explanations or any text outside the JSON."
)


class PlannerError(RuntimeError):
    """Transport, envelope or decoding failure of a planner request."""


class PromptKind(Enum):
    INITIAL = "initial"
    CONTINUATION_VALIDATE = "continuation_validate"


@dataclass(frozen=True)
class PlanOutcome:
    actions: Tuple[UIAction, ...] = ()
    finished: bool = False

    @classmethod
    def from_actions(cls, actions: List[UIAction]) -> "PlanOutcome":
        finished = any(isinstance(a, Finish) for a in actions)
        return cls(actions=tuple(a for a in actions if not isinstance(a, Finish)), finished=finished)

    @property
    def empty(self) -> bool:
        return not self.finished and not self.actions


def build_prompt(
    kind: PromptKind,
    goal: str,
    elements_json: str,
    last_action: Optional[UIAction] = None,
    next_action: Optional[UIAction] = None,
) -> str:
    screen = f"Current UI elements:\n{elements_json}\n\n"
    if kind is PromptKind.INITIAL:
        return (
            f"{screen}User command: \"{goal}\"\n\n"
            "Which actions should be performed first to carry out the user command?"
        )
    last = describe(last_action) if last_action is not None else (
        "None (the task is resuming, or no actions were suggested last time)"
    )
    return (
        f"{screen}The original user command was: \"{goal}\"\n"
        f"The last action performed was: {last}\n"
        f"The next action planned from an earlier step was: {describe(next_action)}\n\n"
        "Looking at the new screen and the original command:\n"
        "1. If the planned next action is still valid and the best next step, confirm it by returning it "
        "as the first action of your JSON array.\n"
        "2. If it is no longer valid, or something else is more appropriate, return the corrected action(s).\n"
        "3. If the command is now complete, return only {\"type\":\"finish\"}."
    )


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()
    return text


def _loads(text: str) -> Any:
    if not (text.startswith("[") or text.startswith("{")):
        raise PlannerError(f"planner response is not a JSON array or object: {text[:200]!r}")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise PlannerError(f"malformed planner JSON: {exc}") from exc


def _candidate_text(envelope: dict) -> str:
    candidates = envelope.get("candidates") or []
    if not isinstance(candidates, list):
        raise PlannerError(f"malformed Gemini envelope: 'candidates' is {type(candidates).__name__}")
    if not candidates:
        error = envelope.get("error")
        if isinstance(error, dict):
            raise PlannerError(f"Gemini API error: {error.get('message', 'unknown error')}")
        DEBUG_LOG.add(TAG, "Warning: response envelope had no candidates.")
        return ""
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        DEBUG_LOG.add(TAG, "Warning: response candidate had no content.")
        return ""
    parts = content.get("parts") or []
    if not isinstance(parts, list):
        raise PlannerError(f"malformed Gemini envelope: 'parts' is {type(parts).__name__}")
    texts = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        text = part.get("text", "")
        if not isinstance(text, str):
            raise PlannerError(f"malformed Gemini envelope: part text is {type(text).__name__}")
        if text:
            texts.append(text)
    return _strip_fences("\n".join(texts))


def decode_response(text: str) -> PlanOutcome:
    """
    Decodes either a raw JSON action list/object or a Gemini envelope whose
    candidates[0].content.parts hold that JSON as text.
    """
    payload = _loads(_strip_fences(text or ""))
    if isinstance(payload, dict) and "candidates" in payload:
        inner = _candidate_text(payload)
        if not inner:
            return PlanOutcome()
        payload = _loads(inner)
    if isinstance(payload, dict) and "type" not in payload and isinstance(payload.get("error"), dict):
        raise PlannerError(f"planner error: {payload['error'].get('message', 'unknown error')}")

    items = payload if isinstance(payload, list) else [payload]
    try:
        actions = [action_from_dict(item) for item in items]
    except ActionParseError as exc:
        raise PlannerError(f"invalid action in planner response: {exc}") from exc
    return PlanOutcome.from_actions(actions)


def build_planner_agent(model: str = DEFAULT_MODEL) -> LlmAgent:
    """
    Planner agent definition: carries the system instruction and the model.
    `ollama/...` models are wrapped with LiteLlm, everything else is a Gemini model name.
    """
    if isinstance(model, str) and model.startswith("ollama/"):
        from google.adk.models.lite_llm import LiteLlm

        model_obj: Any = LiteLlm(model=model)
    else:
        model_obj = model
    return LlmAgent(
        name="ui_planner",
        model=model_obj,
        description="Plans the next UI actions for a natural-language command.",
        instruction=PLANNER_INSTRUCTION,
    )


def call_gemini(model: str, text: str, api_key: Optional[str], timeout: float = 20.0) -> str:
    """REST call to Gemini generateContent; returns the raw response envelope."""
    if not api_key:
        raise PlannerError("Missing GOOGLE_API_KEY for Gemini planner.")
    payload = {"contents": [{"parts": [{"text": text}]}]}
    try:
        resp = requests.post(GEMINI_URL.format(model=model), params={"key": api_key}, json=payload, timeout=timeout)
    except requests.RequestException as exc:
        raise PlannerError(f"Gemini request failed: {exc}") from exc
    if resp.status_code != 200:
        raise PlannerError(f"Gemini call failed with code {resp.status_code}: {resp.text[:200]}")
    return resp.text


def call_ollama(model: str, text: str, timeout: float = 60.0, url: str = OLLAMA_URL) -> str:
    """Local Ollama generate call; returns the model's text response."""
    model_name = model.split("ollama/", 1)[1] if model.startswith("ollama/") else model
    try:
        resp = requests.post(url, json={"model": model_name, "prompt": text, "stream": False}, timeout=timeout)
    except requests.RequestException as exc:
        raise PlannerError(f"Ollama request failed: {exc}") from exc
    if resp.status_code != 200:
        raise PlannerError(f"Ollama call failed with code {resp.status_code}: {resp.text[:200]}")
    try:
        data = resp.json()
    except ValueError as exc:
        raise PlannerError(f"Ollama returned non-JSON body: {exc}") from exc
    return str(data.get("response", ""))


Transport = Callable[[str], str]


class PlannerClient:
    """
    Packages goal + snapshot into a planner request and decodes the answer.
    Every failure surfaces as PlannerError; it never turns into "finish" or "empty".
    """

    def __init__(
        self,
        agent: Optional[LlmAgent] = None,
        transport: Optional[Transport] = None,
        api_key: Optional[str] = None,
        timeout: float = 20.0,
    ) -> None:
        self.agent = agent if agent is not None or transport is not None else build_planner_agent()
        self.transport = transport or self._agent_transport
        self.api_key = api_key or os.environ.get("GOOGLE_API_KEY")
        self.timeout = timeout

    def _agent_transport(self, prompt: str) -> str:
        instruction = str(getattr(self.agent, "instruction", "") or "")
        model = getattr(self.agent, "model", DEFAULT_MODEL)
        # LiteLlm wraps the model string.
        if hasattr(model, "model"):
            model = model.model
        text = f"{instruction}\n\n{prompt}" if instruction else prompt
        if str(model).startswith("ollama/"):
            return call_ollama(str(model), text, timeout=max(self.timeout, 60.0))
        return call_gemini(str(model), text, self.api_key, timeout=self.timeout)

    def plan(
        self,
        kind: PromptKind,
        goal: str,
        snapshot: UISnapshot,
        last_action: Optional[UIAction] = None,
        next_action: Optional[UIAction] = None,
    ) -> PlanOutcome:
        elements_json = snapshot.to_json()
        prompt = build_prompt(kind, goal, elements_json, last_action, next_action)
        DEBUG_LOG.debug(
            TAG,
            f"plan {kind.name}: goal='{goal}' elements={len(snapshot.interactive())} "
            f"last={describe(last_action)} next={describe(next_action)}",
        )
        try:
            raw = self.transport(prompt)
        except PlannerError:
            raise
        except requests.RequestException as exc:
            raise PlannerError(f"planner transport failed: {exc}") from exc
        outcome = decode_response(raw)
        DEBUG_LOG.debug(
            TAG, f"decoded {len(outcome.actions)} actions, finished={outcome.finished}: "
            f"{', '.join(str(a) for a in outcome.actions)}"
        )
        return outcome
