"""Tag-group membership, ordering and template loading."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field

from .contracts import PromptTemplate

logger = logging.getLogger(__name__)

_GROUP_TAG = re.compile(r"^([A-Za-z][A-Za-z0-9_]*)-(\d+)$")
_TRAILING_ORDER = re.compile(r"-(\d+)$")


class TagGroup(BaseModel):
    """A named, ordered set of templates sharing a tag prefix."""

    name: str
    templates: List[PromptTemplate] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.templates)


def parse_tag(tag: str) -> Optional[Tuple[str, int]]:
    """Split ``mainReference-001`` into ``("mainReference", 1)``."""
    match = _GROUP_TAG.match(tag)
    if not match:
        return None
    return match.group(1), int(match.group(2))


def tag_order(tag: str) -> int:
    """Numeric position encoded in a tag's trailing ``-<digits>``, else 0."""
    match = _TRAILING_ORDER.search(tag)
    return int(match.group(1)) if match else 0


def template_order(template: PromptTemplate, group_name: str) -> int:
    tag = template.tag_for(group_name)
    return tag_order(tag) if tag is not None else 0


def group_templates(
    templates: List[PromptTemplate], group_name: str
) -> List[PromptTemplate]:
    """Templates of ``group_name`` in ascending tag order.

    ``sorted`` is stable, so templates sharing an order keep their input
    order.
    """
    members = [t for t in templates if t.tag_for(group_name) is not None]
    return sorted(members, key=lambda t: template_order(t, group_name))


def extract_tag_groups(templates: List[PromptTemplate]) -> List[TagGroup]:
    """Discover every tag group present in ``templates``."""
    grouped: Dict[str, List[PromptTemplate]] = {}
    for template in templates:
        for tag in template.tags:
            parsed = parse_tag(tag)
            if parsed is None:
                continue
            members = grouped.setdefault(parsed[0], [])
            if all(existing.id != template.id for existing in members):
                members.append(template)

    return [
        TagGroup(name=name, templates=group_templates(members, name))
        for name, members in sorted(grouped.items())
    ]


def load_templates(path: str | Path) -> List[PromptTemplate]:
    """Read prompt templates from a YAML or JSON file.

    The document is either a list of templates or a mapping with a
    ``templates`` key.
    """
    path = Path(path)
    text = path.read_text()
    if path.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)

    if isinstance(data, dict):
        data = data.get("templates", [])
    templates = [PromptTemplate.model_validate(item) for item in data or []]
    logger.info(f"Loaded {len(templates)} templates from {path}")
    return templates
