"""Command orchestration for driving a mobile UI from natural-language goals."""

from .actions import ActionParseError, Click, Finish, GlobalNav, Scroll, Swipe, Type, UIAction, action_from_dict
from .config import PortalConfig
from .debug_log import DEBUG_LOG, DebugLog
from .event_loop import BackgroundDispatcher, EventLoop
from .executor import ActionExecutor
from .orchestrator import Command, CommandResult, CommandState, Orchestrator, PlanResolved
from .planner import PlanOutcome, PlannerClient, PlannerError, PromptKind, build_planner_agent, decode_response
from .snapshot import SnapshotBuilder, UIElement, UISnapshot, find_first_scrollable
