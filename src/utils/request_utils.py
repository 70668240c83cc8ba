"""
Query string helpers for list-valued parameters.

A list can arrive either as one JSON array (?categories=["sponsor","intro"])
or as a repeated scalar (?category=sponsor&category=intro). The JSON form
wins when both are present.
"""

import json
from typing import Any, List, Optional

from starlette.datastructures import QueryParams

from errors import InvalidRequestError


def parse_list_param(
    query_params: QueryParams,
    json_name: str,
    repeated_name: str,
    invalid_json_message: str,
    not_a_list_message: str,
) -> Optional[List[Any]]:
    """
    Read a list parameter from the query string.

    Args:
        query_params: Request query parameters
        json_name: Name of the JSON array parameter (e.g. "categories")
        repeated_name: Name of the repeated scalar parameter (e.g. "category")
        invalid_json_message: Client error message for unparsable JSON
        not_a_list_message: Client error message when JSON is not an array

    Returns:
        The list, or None when neither parameter is present

    Raises:
        InvalidRequestError: On malformed JSON or a non-array JSON value
    """
    raw = query_params.get(json_name)
    if raw is not None:
        try:
            parsed = json.loads(raw)
        except ValueError:
            raise InvalidRequestError(invalid_json_message)
        if not isinstance(parsed, list):
            raise InvalidRequestError(not_a_list_message)
        return parsed

    repeated = query_params.getlist(repeated_name)
    return repeated or None
