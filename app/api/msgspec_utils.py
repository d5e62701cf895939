"""Decoding of worker callback bodies into msgspec wire contracts."""

from __future__ import annotations

from typing import TypeVar

import msgspec
from fastapi import HTTPException, Request, status

T = TypeVar("T", bound=msgspec.Struct)


async def decode_msgspec_request(request: Request, struct_type: type[T]) -> T:
  """Decode a JSON body into `struct_type`; malformed JSON is 400, wrong shape 422."""
  payload_bytes = await request.body()
  try:
    return msgspec.json.decode(payload_bytes, type=struct_type)
  except msgspec.ValidationError as exc:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid {struct_type.__name__}: {exc}") from exc
  except msgspec.DecodeError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid request payload: {exc}") from exc
