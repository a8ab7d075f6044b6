"""
Wire codec for batches of protocol messages.

A batch is a run of JSON objects separated by whitespace, not a JSON array:

    {"type":"keygen_round1","party_index":1,...} {"type":"keygen_round1",...}

Any number of party outputs can be concatenated by plain string
concatenation, by hand or by a bulletin board that only appends text, and
parsed back without re-encoding.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .errors import ParseError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Batch = Union[str, Iterable[Union[Dict[str, Any], BaseModel]]]

_WHITESPACE = " \t\r\n"


def split_objects(data: str) -> List[str]:
    """
    Split a batch into the text of its top-level JSON objects.

    The scanner tracks brace depth and whether it is inside a string, so
    braces and escaped quotes inside string values never end an object.

    Parameters:
    data (str): The batch text.

    Returns:
    List[str]: One substring per object, in input order.

    Raises:
    ParseError: On a stray character between objects, a closing brace with
    no open object, an unterminated string, or an unclosed object. The
    position is the offset of the first unparseable character.
    """
    objects: List[str] = []
    depth = 0
    in_string = False
    escaped = False
    start = 0
    string_start = 0

    for position, char in enumerate(data):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if depth == 0:
            if char in _WHITESPACE:
                continue
            if char != "{":
                if char == "}":
                    raise ParseError("Unbalanced closing brace", position)
                raise ParseError(f"Unexpected character {char!r} between objects", position)
            start = position
            depth = 1
        elif char == '"':
            in_string = True
            string_start = position
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                objects.append(data[start:position + 1])

    if in_string:
        raise ParseError("Unterminated string", string_start)
    if depth > 0:
        raise ParseError("Unbalanced braces, object is never closed", start)
    return objects


def parse_batch(data: str) -> List[Dict[str, Any]]:
    """Parse a batch into a list of JSON objects."""
    parsed = []
    offset = 0
    for text in split_objects(data):
        offset = data.index(text, offset)
        try:
            parsed.append(json.loads(text))
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON object: {e.msg}", offset + e.pos) from e
        offset += len(text)
    logger.debug(f"Parsed {len(parsed)} objects from batch")
    return parsed


def serialize(message: BaseModel) -> str:
    """Encode one message as a single compact JSON object."""
    return message.model_dump_json()


def join(messages: Iterable[BaseModel]) -> str:
    """Concatenate several messages into one batch."""
    return " ".join(serialize(message) for message in messages)


def message_type(model: Type[BaseModel]) -> str:
    return model.model_fields["type"].default


def filter_messages(
    messages: Batch, model: Type[M], session: Optional[str] = None
) -> List[M]:
    """
    Extract the messages of one type from a batch.

    Objects of other types are ignored. When several objects come from the
    same party_index, the first one wins and later ones are dropped.

    Parameters:
    messages (Batch): Batch text, or an iterable of dicts or message models.
    model (Type[M]): The message model to extract.
    session (Optional[str]): Keep only messages of this signing session.

    Returns:
    List[M]: Validated messages, in input order.

    Raises:
    ParseError: If the batch is malformed or a message of the requested type
    does not validate.
    """
    if isinstance(messages, str):
        objects: Iterable[Any] = parse_batch(messages)
    else:
        objects = messages

    wanted = message_type(model)
    selected: List[M] = []
    seen = set()
    for obj in objects:
        if isinstance(obj, BaseModel):
            obj = obj.model_dump()
        if not isinstance(obj, dict) or obj.get("type") != wanted:
            continue
        if session is not None and obj.get("session") != session:
            continue

        # Later objects from a party are dropped unread, even malformed ones
        index = obj.get("party_index")
        if isinstance(index, int) and index in seen:
            logger.debug(f"Ignoring duplicate {wanted} message from party {index}")
            continue

        try:
            message = model.model_validate(obj)
        except ValidationError as e:
            raise ParseError(f"Invalid {wanted} message: {e}") from e

        index = getattr(message, "party_index")
        if index in seen:
            logger.debug(f"Ignoring duplicate {wanted} message from party {index}")
            continue
        seen.add(index)
        selected.append(message)

    return selected
