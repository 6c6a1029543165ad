"""Chat turn orchestration, tools, context and mutation extraction."""

from chaindesk_daemon.chat.orchestrator import Orchestrator
from chaindesk_daemon.chat.tools import OPTION_CHAIN_TOOL, TOOLS, ChainToolExecutor

__all__ = ["OPTION_CHAIN_TOOL", "TOOLS", "ChainToolExecutor", "Orchestrator"]
