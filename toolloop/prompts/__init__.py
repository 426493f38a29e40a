"""System prompt composition for the toolloop agent."""

from .assembler import assemble_system_prompt
from .base import BASE_PROMPT
from .behaviors import SAFETY_INSTRUCTIONS, TASK_EXECUTION_GUIDELINES, TOOL_USAGE_POLICY
from .mcp import mcp_instructions
from .tools import TOOL_DESCRIPTIONS, format_tool_descriptions
