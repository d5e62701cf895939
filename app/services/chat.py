"""Natural-language command parsing for the research assistant chat."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from app.ai.json_parser import parse_json_object

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE = "I'll help you with that."

_PARSING_PROMPT = """You are a command parser for a productivity assistant. Analyze the following user input and determine:
1. The command type
2. Extract relevant parameters
3. Generate a natural language response

Available command types:
- CREATE_TODO: Create a new todo item
- UPDATE_TODO: Update existing todo
- DELETE_TODO: Delete a todo
- SEARCH_TODO: Search for todos
- SUMMARIZE_TODOS: Summarize todos (by date, status, etc.)
- SEARCH_PAPERS: Search academic papers
- GENERAL_QUESTION: General questions

Today is {today}.

User input: "{user_input}"

Respond ONLY with a JSON object in this exact format:
{{
  "commandType": "COMMAND_TYPE",
  "parameters": {{
    "title": "extracted title if applicable",
    "description": "extracted description",
    "dueDate": "ISO date string if mentioned",
    "priority": "HIGH/MEDIUM/LOW if mentioned",
    "searchQuery": "search terms if searching",
    "timeRange": "TODAY/THIS_WEEK/THIS_MONTH if summarizing"
  }},
  "response": "Natural language response to show the user"
}}

Example:
Input: "Create todo for meeting tomorrow at 6 pm"
Output: {{"commandType": "CREATE_TODO", "parameters": {{"title": "Meeting", "dueDate": "<tomorrow>T18:00:00", "priority": "MEDIUM"}}, "response": "I'll create a todo for your meeting tomorrow at 6 PM."}}
"""


class CommandType(str, Enum):
  CREATE_TODO = "CREATE_TODO"
  UPDATE_TODO = "UPDATE_TODO"
  DELETE_TODO = "DELETE_TODO"
  SEARCH_TODO = "SEARCH_TODO"
  SUMMARIZE_TODOS = "SUMMARIZE_TODOS"
  SEARCH_PAPERS = "SEARCH_PAPERS"
  GENERAL_QUESTION = "GENERAL_QUESTION"


class TextGenerator(Protocol):
  async def generate(self, prompt: str) -> str: ...


@dataclass(frozen=True)
class ParsedCommand:
  command_type: CommandType
  original_query: str
  natural_response: str
  parameters: dict[str, Any] = field(default_factory=dict)


def build_parsing_prompt(user_input: str, *, today: str | None = None) -> str:
  return _PARSING_PROMPT.format(user_input=user_input.replace('"', '\\"'), today=today or time.strftime("%Y-%m-%d", time.gmtime()))


def _parsed_from_reply(user_input: str, reply: str) -> ParsedCommand:
  """Interpret the model reply, raising ValueError when it is not a usable command."""
  payload = parse_json_object(reply)

  raw_type = payload.get("commandType")
  if not isinstance(raw_type, str) or not raw_type.strip():
    raise ValueError("Command type is missing from model response")
  command_type = CommandType(raw_type.strip().upper())

  parameters = payload.get("parameters")
  if not isinstance(parameters, dict):
    parameters = {}

  response = payload.get("response")
  if not isinstance(response, str) or not response.strip():
    response = DEFAULT_RESPONSE

  return ParsedCommand(command_type=command_type, original_query=user_input, natural_response=response, parameters=parameters)


class CommandParserService:
  """Turn a chat message into a structured command with one model call.

  When the reply cannot be interpreted the message is answered as a general
  question instead, using a second, plain call with the raw user input.
  """

  def __init__(self, generator: TextGenerator) -> None:
    self._generator = generator

  async def parse_command(self, user_input: str) -> ParsedCommand:
    logger.info("Parsing chat command (%d chars)", len(user_input))
    reply = await self._generator.generate(build_parsing_prompt(user_input))

    try:
      return _parsed_from_reply(user_input, reply)
    except ValueError as exc:
      logger.warning("Falling back to general question handling: %s", exc)

    answer = await self._generator.generate(user_input)
    return ParsedCommand(command_type=CommandType.GENERAL_QUESTION, original_query=user_input, natural_response=answer)
