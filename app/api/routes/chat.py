import logging
import time

from fastapi import APIRouter, Depends

from app.api.deps import get_command_parser
from app.api.models import ChatCommandRequest, ChatCommandResponse
from app.services.chat import CommandParserService

router = APIRouter()
logger = logging.getLogger("app.api.routes.chat")


@router.post("/command", response_model=ChatCommandResponse)
async def parse_chat_command(request: ChatCommandRequest, parser: CommandParserService = Depends(get_command_parser)) -> ChatCommandResponse:  # noqa: B008
  """Classify a chat message into a command with extracted parameters."""
  parsed = await parser.parse_command(request.message)
  return ChatCommandResponse(
    command_type=parsed.command_type.value,
    parameters=parsed.parameters,
    response=parsed.natural_response,
    original_query=parsed.original_query,
    timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
  )
