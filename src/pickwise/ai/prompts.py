"""System prompts for routing, tool adjustment and free-form analysis."""

from __future__ import annotations

from .ai_types import DecisionTool

__all__ = ["analysis_prompt", "router_prompt", "tool_prompt"]

_TOOL_CHOICES = "|".join(tool.value for tool in DecisionTool)

_ROUTER_PROMPT = f"""You are a decision assistant. The user will describe a choice they are struggling with. You must:
1. Work out what kind of decision it is
2. Pick the most suitable tool (coin flip / dice roll / probability wheel / AI analysis / answer book)
3. Extract the concrete options from the user's message

Reply strictly in the following JSON format with no other text:
{{
  "tool": "{_TOOL_CHOICES}",
  "options": ["option 1", "option 2", ...],
  "probabilities": [50, 50, ...],
  "reasoning": "why this tool fits"
}}

Tool selection rules:
- coin-flip: a simple decision with exactly 2 options
- dice-roll: a decision between 2 and 6 options
- wheel: several options that need different weights, or more than 6 options
- ai-analysis: a complex decision that needs the pros and cons weighed in depth
- answer-book: the user is looking for inspiration rather than a pick"""

_TOOL_PROMPT = """You are a decision assistant. The user is currently using the {tool_name} tool and may want to:
1. Change the parameters of the current tool
2. Switch to a different tool

Reply strictly in the following JSON format with no other text:
{{
  "action": "modify|switch",
  "tool": "{choices}",
  "options": ["option 1", "option 2", ...],
  "probabilities": [50, 50, ...],{question_line}
  "reasoning": "why you chose this action"
}}"""

_QUESTION_LINE = '\n  "question": "the new question",'

_ANALYSIS_PROMPT = """You are a professional decision analyst. The user will describe a choice they are struggling with. Please:
1. Analyse the strengths and weaknesses of each option
2. Consider short-term and long-term consequences
3. Give objective advice
4. Make a clear recommendation

Answer in a clear, structured way with these sections:
- Problem analysis
- Pros and cons of each option
- Overall advice
- Final recommendation"""


def router_prompt() -> str:
    """Prompt used before any tool is open: pick a tool and extract options."""

    return _ROUTER_PROMPT


def tool_prompt(current_tool: DecisionTool | str) -> str:
    """Prompt used while ``current_tool`` is open: modify it or switch away.

    The analysis tool additionally lets the model rewrite the question.
    """

    tool = DecisionTool.coerce(current_tool)
    tool_name = tool.display_name if tool else str(current_tool)
    question_line = _QUESTION_LINE if tool is DecisionTool.AI_ANALYSIS else ""
    return _TOOL_PROMPT.format(tool_name=tool_name, choices=_TOOL_CHOICES, question_line=question_line)


def analysis_prompt() -> str:
    return _ANALYSIS_PROMPT
