"""Parsing of OVAL definition documents and their criteria trees."""

from __future__ import annotations

import itertools
import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import IO

from .vulnsrc import CouldNotParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Criterion:
    """A single OVAL test, described by its comment."""

    comment: str = ""


@dataclass
class Criteria:
    """A node of the criteria tree combining its children with an operator."""

    operator: str = ""
    criterias: list[Criteria] = field(default_factory=list)
    criterions: list[Criterion] = field(default_factory=list)


@dataclass(frozen=True)
class Reference:
    """A reference attached to a definition's metadata."""

    source: str = ""
    uri: str = ""


@dataclass
class Definition:
    """One OVAL definition: its metadata and criteria tree."""

    title: str = ""
    description: str = ""
    references: list[Reference] = field(default_factory=list)
    criteria: Criteria = field(default_factory=Criteria)
    severity: str = ""


def _local(tag: object) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _children(elem: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in elem if _local(child.tag) == name]


def _path(elem: ET.Element, *names: str) -> ET.Element | None:
    """Return the first element reached by following ``names`` from ``elem``."""
    current: ET.Element | None = elem
    for name in names:
        if current is None:
            return None
        found = _children(current, name)
        current = found[0] if found else None
    return current


def _text(elem: ET.Element | None) -> str:
    """Character data directly inside ``elem``, nested elements skipped."""
    if elem is None:
        return ""
    return (elem.text or "") + "".join(child.tail or "" for child in elem)


def _parse_criteria(elem: ET.Element) -> Criteria:
    return Criteria(
        operator=elem.get("operator", ""),
        criterias=[_parse_criteria(child) for child in _children(elem, "criteria")],
        criterions=[
            Criterion(comment=child.get("comment", ""))
            for child in _children(elem, "criterion")
        ],
    )


def _parse_definition(elem: ET.Element) -> Definition:
    references = [
        Reference(source=ref.get("source", ""), uri=ref.get("ref_url", ""))
        for metadata in _children(elem, "metadata")
        for ref in _children(metadata, "reference")
    ]
    criteria_elem = _path(elem, "criteria")
    return Definition(
        title=_text(_path(elem, "metadata", "title")),
        description=_text(_path(elem, "metadata", "description")),
        references=references,
        criteria=_parse_criteria(criteria_elem) if criteria_elem is not None else Criteria(),
        severity=_text(_path(elem, "metadata", "advisory", "severity")),
    )


def parse_definitions(stream: IO[bytes] | bytes | str) -> list[Definition]:
    """Parse the definitions of an OVAL document.

    Raises CouldNotParseError when the document is not well-formed XML.
    """
    try:
        if isinstance(stream, (bytes, str)):
            root = ET.fromstring(stream)
        else:
            root = ET.parse(stream).getroot()
    except ET.ParseError as err:
        logger.error("could not decode OVAL XML: %s", err)
        raise CouldNotParseError() from err

    return [
        _parse_definition(definition)
        for definitions in _children(root, "definitions")
        for definition in _children(definitions, "definition")
    ]


def get_criterions(node: Criteria, ignored: Iterable[str]) -> list[list[Criterion]]:
    """Return the alternatives expressed by the criterions directly in ``node``.

    Criterions whose comment contains any of ``ignored`` are dropped. An AND
    node yields one alternative holding all of them, an OR node one per
    criterion, and any other operator none.
    """
    ignored = tuple(ignored)
    kept = [c for c in node.criterions if not any(item in c.comment for item in ignored)]
    if node.operator == "AND":
        return [kept]
    if node.operator == "OR":
        return [[c] for c in kept]
    return []


def get_possibilities(node: Criteria, ignored: Iterable[str]) -> list[list[Criterion]]:
    """Expand a criteria tree into the list of criterion sets that satisfy it."""
    ignored = tuple(ignored)
    if not node.criterias:
        return get_criterions(node, ignored)

    groups = [get_possibilities(child, ignored) for child in node.criterias]
    if node.criterions:
        groups.append(get_criterions(node, ignored))

    if node.operator == "AND":
        return [list(itertools.chain.from_iterable(combo)) for combo in itertools.product(*groups)]
    if node.operator == "OR":
        return [possibility for group in groups for possibility in group]
    return []


def clean_description(text: str) -> str:
    """Replace runs of one to three newlines with a single space."""
    return text.replace("\n\n\n", " ").replace("\n\n", " ").replace("\n", " ")


def title_name(title: str) -> str:
    """Return the advisory name in front of the first ``": "`` of a title."""
    index = title.find(": ")
    if index < 0:
        raise ValueError(f"no advisory name in title {title!r}")
    return title[:index].strip()