"""
User-info aggregation: validate the requested fields, resolve them, assemble the bundle.

Two phases:
    1. Every requested field with its own producer is dispatched concurrently
    2. Field groups (fields that must share one computation) are resolved
       once and written after phase 1, atomically per group

The bundle keeps the caller's requested order.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from collaborators import Collaborators
from errors import InvalidRequestError
from user_fields import (
    ALL_FIELDS,
    DEFAULT_FIELDS,
    FIELD_REGISTRY,
    FieldContext,
    FieldResolver,
    Grouped,
    UserField,
)
from utils.database import Database
from utils.hash_cache import HashCache

logger = logging.getLogger(__name__)

_ALLOWED_NAMES = {field.value for field in ALL_FIELDS}


def select_fields(values: Optional[List[Any]]) -> List[UserField]:
    """
    Normalize a requested field list against the allow-list.

    Args:
        values: Parsed list from the request, or None for the default set

    Returns:
        Valid fields, de-duplicated, in requested order

    Raises:
        InvalidRequestError: If values is not a list or no valid field remains
    """
    if values is None:
        return list(DEFAULT_FIELDS)
    if not isinstance(values, list):
        raise InvalidRequestError("Invalid values")

    selected = [
        UserField(value)
        for value in values
        if isinstance(value, str) and value in _ALLOWED_NAMES
    ]
    if not selected:
        raise InvalidRequestError("No valid values specified")
    return list(dict.fromkeys(selected))


async def resolve_subject(
    hasher: HashCache,
    user_id: Optional[str] = None,
    public_user_id: Optional[str] = None,
) -> str:
    """Public id for the request: hash of user_id, else public_user_id as given."""
    subject = await hasher.get_hash(user_id) if user_id else public_user_id
    if not subject:
        raise InvalidRequestError("Invalid userID or publicUserID parameter")
    return subject


async def build_user_info(
    db: Database,
    collaborators: Collaborators,
    subject: str,
    fields: List[UserField],
) -> Dict[str, Any]:
    """
    Resolve the given fields for subject.

    Algorithm:
        1. Phase 1: gather all non-grouped fields concurrently
        2. Phase 2: resolve each group that has a requested member, once
        3. Write group members after phase 1 results
        4. Emit the bundle in requested order

    Returns:
        Mapping of field name -> value
    """
    resolver = FieldResolver(FieldContext(user_id=subject, db=db, collaborators=collaborators))

    individual = [f for f in fields if not isinstance(FIELD_REGISTRY[f], Grouped)]
    groups = list(dict.fromkeys(
        FIELD_REGISTRY[f].group for f in fields if isinstance(FIELD_REGISTRY[f], Grouped)
    ))

    try:
        values: Dict[UserField, Any] = dict(
            zip(individual, await asyncio.gather(*(resolver.resolve(f) for f in individual)))
        )

        for group in groups:
            group_values = await resolver.resolve_group(group)
            values.update({f: v for f, v in group_values.items() if f in fields})
    finally:
        await resolver.cancel_pending()

    return {field.value: values[field] for field in fields}


async def get_user_info(
    db: Database,
    collaborators: Collaborators,
    hasher: HashCache,
    user_id: Optional[str] = None,
    public_user_id: Optional[str] = None,
    values: Optional[List[Any]] = None,
) -> Dict[str, Any]:
    """
    Compile the requested statistics for one user.

    Validation happens before any store access: the field list first, then
    the subject id.

    Args:
        db: Store client
        collaborators: Reputation / permission providers
        hasher: Raw id -> public id hasher
        user_id: Raw (private) user id, hashed before use
        public_user_id: Already public user id, used when user_id is absent
        values: Requested field names (None -> default set)

    Returns:
        Mapping of field name -> value, in requested order

    Raises:
        InvalidRequestError: Invalid field list or unresolvable subject
    """
    fields = select_fields(values)
    subject = await resolve_subject(hasher, user_id, public_user_id)

    logger.debug(f"Resolving {len(fields)} fields for {subject}")
    return await build_user_info(db, collaborators, subject, fields)
