"""
Template Variable Service

Finds {{placeholder}} references in step text and keeps each node's derived
`variables` list in sync with its subject/message text.
"""

import re
import logging
from typing import Dict, Iterable, List, Optional, Set

from schemas.sequence import SequenceNode

logger = logging.getLogger(__name__)

# Keys the campaign service can fill from prospect data
ALLOWED_VARIABLES = ("name", "first_name", "email", "company", "position")

VARIABLE_ALIASES: Dict[str, str] = {
    "jobTitle": "position",
    "title": "position",
    "firstName": "first_name",
}

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def normalize_variable(identifier: str) -> str:
    return VARIABLE_ALIASES.get(identifier, identifier)


def extract_variables(text: str) -> Set[str]:
    """
    Return the allowed keys referenced by {{identifier}} placeholders in text.

    Aliases are mapped to their canonical key first. Anything that is still
    not an allowed key is ignored, since free text may contain literal braces.
    """
    if not text:
        return set()

    found = set()
    for match in PLACEHOLDER_PATTERN.finditer(text):
        key = normalize_variable(match.group(1))
        if key in ALLOWED_VARIABLES:
            found.add(key)
    return found


def ordered_variables(keys: Iterable[str]) -> List[str]:
    """Allowed keys in canonical order, for stable output."""
    wanted = set(keys)
    return [key for key in ALLOWED_VARIABLES if key in wanted]


def sync_node_variables(node: SequenceNode) -> bool:
    """
    Recompute node.content.variables from its templated text.

    Writes only when the set actually changed. Returns True if it wrote.
    """
    computed = extract_variables(node.content.template_text())
    if computed == set(node.content.variables):
        return False

    node.content.variables = ordered_variables(computed)
    logger.debug(f"Variables for step {node.id} now {node.content.variables}")
    return True


def _insertion_target(node: SequenceNode, key: str, field: str) -> Optional[str]:
    if key not in ALLOWED_VARIABLES:
        return None
    field_name = node.content.field_name_for(field)
    if field_name is None or field_name not in node.content.template_fields:
        return None
    return field_name


def can_insert_variable(node: SequenceNode, key: str, field: str) -> bool:
    return _insertion_target(node, key, field) is not None


def insert_variable(node: SequenceNode, key: str, field: str) -> bool:
    """
    Append a {{key}} placeholder to one of the node's templated text fields.

    No-op (returns False) when the key is not allowed or the field does not
    exist for this kind of step.
    """
    field_name = _insertion_target(node, key, field)
    if field_name is None:
        return False

    content = node.content
    current = getattr(content, field_name) or ""
    setattr(content, field_name, current + "{{" + key + "}}")
    sync_node_variables(node)
    return True
