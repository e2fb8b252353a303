"""XML encoding and decoding of epic documents.

The writer always emits the canonical layout::

    <epic id name status created_at>
      <assignee/> <description/>
      <current_state>...</current_state>
      <phases><phase id status started_at completed_at><name/>...</phase></phases>
      <tasks>...</tasks> <tests>...</tests> <events>...</events>
    </epic>

The reader also accepts older documents: legacy statuses
(planning/active/completed/on_hold), names stored as attributes,
timestamps stored as child elements, and the ``test_status`` attribute.
Anything it does not recognise is kept verbatim on the model and written
back on save.
"""

from __future__ import annotations

import copy
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime

from agentpm.clock import format_timestamp, parse_timestamp
from agentpm.errors import InvalidTimeFormatError, StorageError
from agentpm.events import new_event_id
from agentpm.models import (
    VALID_TEST_RESULTS,
    VALID_TEST_STATUSES,
    CurrentState,
    Epic,
    Event,
    Phase,
    Task,
    Test,
)
from agentpm.types.core import XMLRepairDict

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

LEGACY_STATUS_MAP: dict[str, str] = {
    "planning": "pending",
    "active": "wip",
    "completed": "done",
    "on_hold": "pending",
}

_EPIC_ATTRS = frozenset({"id", "name", "status", "created_at"})
_EPIC_CHILDREN = frozenset(
    {"name", "created_at", "assignee", "description", "current_state", "phases", "tasks", "tests", "events"}
)
_PHASE_FIELDS = frozenset({"id", "name", "status", "description", "started_at", "completed_at"})
_TASK_FIELDS = frozenset(
    {"id", "phase_id", "name", "status", "description", "assignee", "started_at", "completed_at", "cancelled_at"}
)
_TEST_FIELDS = frozenset(
    {
        "id",
        "task_id",
        "phase_id",
        "name",
        "status",
        "test_status",
        "result",
        "description",
        "started_at",
        "passed_at",
        "failed_at",
        "cancelled_at",
        "failure_note",
        "cancellation_reason",
    }
)
_EVENT_FIELDS = frozenset({"id", "type", "timestamp", "data"})
_STATE_FIELDS = frozenset({"active_phase", "active_task", "next_action", "failing_tests"})
_CONTAINERS = ("phases", "tasks", "tests", "events")


def canonical_status(value: str) -> str:
    """Map a legacy status onto the unified namespace (unknown values pass through)."""
    value = value.strip()
    return LEGACY_STATUS_MAP.get(value, value)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class _Reader:
    """Collects timestamp problems while decoding so they surface together."""

    def __init__(self) -> None:
        self.issues: list[str] = []
        self.migrated = 0

    def status(self, elem: ET.Element, key: str = "status") -> str:
        raw = self.text(elem, key).strip() or "pending"
        if raw in LEGACY_STATUS_MAP:
            self.migrated += 1
        return canonical_status(raw)

    def field(self, elem: ET.Element, key: str) -> str | None:
        """Attribute value, falling back to the text of a same-named child."""
        value = elem.get(key)
        if value is not None:
            return value
        child = elem.find(key)
        if child is not None:
            return (child.text or "").strip()
        return None

    def text(self, elem: ET.Element, key: str) -> str:
        return self.field(elem, key) or ""

    def timestamp(self, elem: ET.Element, key: str, owner: str) -> datetime | None:
        raw = self.field(elem, key)
        if not raw:
            return None
        try:
            return parse_timestamp(raw)
        except InvalidTimeFormatError:
            self.issues.append(f"{owner} has invalid {key} '{raw}'")
            return None


def _freeze(elem: ET.Element) -> str:
    """Serialize an unknown element without layout whitespace."""
    clone = copy.deepcopy(elem)
    for node in clone.iter():
        if node.text is not None and not node.text.strip():
            node.text = None
        if node.tail is not None and not node.tail.strip():
            node.tail = None
    clone.tail = None
    return ET.tostring(clone, encoding="unicode")


def _extras(elem: ET.Element, known: frozenset[str]) -> tuple[dict[str, str], list[str]]:
    attrs = {k: v for k, v in elem.attrib.items() if k not in known}
    children = [_freeze(child) for child in elem if child.tag not in known]
    return attrs, children


def _read_phase(r: _Reader, elem: ET.Element) -> Phase:
    phase_id = r.text(elem, "id")
    owner = f"phase {phase_id}"
    attrs, children = _extras(elem, _PHASE_FIELDS)
    return Phase(
        id=phase_id,
        name=r.text(elem, "name"),
        status=r.status(elem),
        description=r.text(elem, "description"),
        started_at=r.timestamp(elem, "started_at", owner),
        completed_at=r.timestamp(elem, "completed_at", owner),
        extra_attrs=attrs,
        extra_elements=children,
    )


def _read_task(r: _Reader, elem: ET.Element) -> Task:
    task_id = r.text(elem, "id")
    owner = f"task {task_id}"
    attrs, children = _extras(elem, _TASK_FIELDS)
    return Task(
        id=task_id,
        phase_id=r.text(elem, "phase_id"),
        name=r.text(elem, "name"),
        status=r.status(elem),
        description=r.text(elem, "description"),
        assignee=r.text(elem, "assignee"),
        started_at=r.timestamp(elem, "started_at", owner),
        completed_at=r.timestamp(elem, "completed_at", owner),
        cancelled_at=r.timestamp(elem, "cancelled_at", owner),
        extra_attrs=attrs,
        extra_elements=children,
    )


def _read_test(r: _Reader, elem: ET.Element) -> Test:
    test_id = r.text(elem, "id")
    owner = f"test {test_id}"
    unified = r.text(elem, "test_status")
    if unified in VALID_TEST_STATUSES:
        status = unified
    else:
        status = r.status(elem)
    failed_at = r.timestamp(elem, "failed_at", owner)
    result = r.text(elem, "result")
    if result not in VALID_TEST_RESULTS:
        # Documents written before results were tracked.
        if status == "done":
            result = "passing"
        else:
            result = "failing" if failed_at is not None else "passing"
    attrs, children = _extras(elem, _TEST_FIELDS)
    return Test(
        id=test_id,
        task_id=r.text(elem, "task_id"),
        phase_id=r.text(elem, "phase_id"),
        name=r.text(elem, "name"),
        status=status,
        result=result,
        description=r.text(elem, "description"),
        started_at=r.timestamp(elem, "started_at", owner),
        passed_at=r.timestamp(elem, "passed_at", owner),
        failed_at=failed_at,
        cancelled_at=r.timestamp(elem, "cancelled_at", owner),
        failure_note=r.text(elem, "failure_note"),
        cancellation_reason=r.text(elem, "cancellation_reason"),
        extra_attrs=attrs,
        extra_elements=children,
    )


def _read_event(r: _Reader, elem: ET.Element, index: int) -> Event | None:
    event_id = r.text(elem, "id") or new_event_id()
    timestamp = r.timestamp(elem, "timestamp", f"event #{index + 1}")
    if timestamp is None:
        if elem.get("timestamp") is None and elem.find("timestamp") is None:
            r.issues.append(f"event #{index + 1} has no timestamp")
        return None
    data_elem = elem.find("data")
    data = (data_elem.text or "") if data_elem is not None else (elem.text or "")
    attrs, children = _extras(elem, _EVENT_FIELDS)
    return Event(
        id=event_id,
        type=r.text(elem, "type"),
        timestamp=timestamp,
        data=data.strip(),
        extra_attrs=attrs,
        extra_elements=children,
    )


def _read_current_state(r: _Reader, elem: ET.Element) -> CurrentState:
    attrs, children = _extras(elem, _STATE_FIELDS)
    return CurrentState(
        active_phase=r.text(elem, "active_phase") or None,
        active_task=r.text(elem, "active_task") or None,
        next_action=r.text(elem, "next_action"),
        extra_attrs=attrs,
        extra_elements=children,
    )


def _children(root: ET.Element, container: str, tag: str) -> list[ET.Element]:
    wrapper = root.find(container)
    return [] if wrapper is None else wrapper.findall(tag)


def decode_epic(text: str, source: str = "") -> tuple[Epic, list[str]]:
    """Parse an epic document.

    Returns the epic plus any timestamp issues found while decoding.
    Raises StorageError when the text is not well-formed XML or the root
    element is not ``<epic>``.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise StorageError(f"Failed to parse epic XML: {exc}", source) from exc
    if root.tag != "epic":
        raise StorageError(f"Expected <epic> root element, found <{root.tag}>", source)

    r = _Reader()
    attrs = {k: v for k, v in root.attrib.items() if k not in _EPIC_ATTRS}
    children = [_freeze(child) for child in root if child.tag not in _EPIC_CHILDREN]
    tests = [_read_test(r, e) for e in _children(root, "tests", "test")]
    tasks = [_read_task(r, e) for e in _children(root, "tasks", "task")]
    task_phase = {t.id: t.phase_id for t in tasks}
    for test in tests:
        if not test.phase_id and test.task_id in task_phase:
            test.phase_id = task_phase[test.task_id]
    events = [
        event
        for event in (_read_event(r, e, i) for i, e in enumerate(_children(root, "events", "event")))
        if event is not None
    ]
    containers: dict[str, dict[str, str]] = {}
    for tag in _CONTAINERS:
        wrapper = root.find(tag)
        if wrapper is not None and wrapper.attrib:
            containers[tag] = dict(wrapper.attrib)
    state_elem = root.find("current_state")
    epic = Epic(
        id=r.text(root, "id"),
        name=r.text(root, "name"),
        status=r.status(root),
        created_at=r.timestamp(root, "created_at", "epic"),
        description=r.text(root, "description"),
        assignee=r.text(root, "assignee"),
        phases=[_read_phase(r, e) for e in _children(root, "phases", "phase")],
        tasks=tasks,
        tests=tests,
        events=events,
        current_state=_read_current_state(r, state_elem) if state_elem is not None else None,
        extra_attrs=attrs,
        extra_elements=children,
        container_attrs=containers,
    )
    if epic.current_state is not None:
        epic.current_state.failing_tests = len(epic.failing_tests())
    if r.migrated:
        logger.info("Migrated %d legacy status value(s) while loading %s", r.migrated, source or epic.id)
    return epic, r.issues


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _set_ts(elem: ET.Element, key: str, value: datetime | None) -> None:
    if value is not None:
        elem.set(key, format_timestamp(value))


def _sub_text(parent: ET.Element, tag: str, text: str, *, always: bool = False) -> None:
    if text or always:
        ET.SubElement(parent, tag).text = text


def _restore(elem: ET.Element, attrs: dict[str, str], children: list[str]) -> None:
    for key, value in attrs.items():
        elem.set(key, value)
    for raw in children:
        elem.append(ET.fromstring(raw))


def _encode_phase(parent: ET.Element, phase: Phase) -> None:
    elem = ET.SubElement(parent, "phase", {"id": phase.id, "status": phase.status})
    _set_ts(elem, "started_at", phase.started_at)
    _set_ts(elem, "completed_at", phase.completed_at)
    _sub_text(elem, "name", phase.name, always=True)
    _sub_text(elem, "description", phase.description)
    _restore(elem, phase.extra_attrs, phase.extra_elements)


def _encode_task(parent: ET.Element, task: Task) -> None:
    elem = ET.SubElement(parent, "task", {"id": task.id, "phase_id": task.phase_id, "status": task.status})
    if task.assignee:
        elem.set("assignee", task.assignee)
    _set_ts(elem, "started_at", task.started_at)
    _set_ts(elem, "completed_at", task.completed_at)
    _set_ts(elem, "cancelled_at", task.cancelled_at)
    _sub_text(elem, "name", task.name, always=True)
    _sub_text(elem, "description", task.description)
    _restore(elem, task.extra_attrs, task.extra_elements)


def _encode_test(parent: ET.Element, test: Test) -> None:
    elem = ET.SubElement(
        parent,
        "test",
        {
            "id": test.id,
            "task_id": test.task_id,
            "phase_id": test.phase_id,
            "status": test.status,
            "result": test.result,
        },
    )
    _set_ts(elem, "started_at", test.started_at)
    _set_ts(elem, "passed_at", test.passed_at)
    _set_ts(elem, "failed_at", test.failed_at)
    _set_ts(elem, "cancelled_at", test.cancelled_at)
    _sub_text(elem, "name", test.name, always=True)
    _sub_text(elem, "description", test.description)
    _sub_text(elem, "failure_note", test.failure_note)
    _sub_text(elem, "cancellation_reason", test.cancellation_reason)
    _restore(elem, test.extra_attrs, test.extra_elements)


def _encode_event(parent: ET.Element, event: Event) -> None:
    elem = ET.SubElement(
        parent,
        "event",
        {"id": event.id, "type": event.type, "timestamp": format_timestamp(event.timestamp)},
    )
    ET.SubElement(elem, "data").text = event.data
    _restore(elem, event.extra_attrs, event.extra_elements)


def _container(root: ET.Element, epic: Epic, tag: str) -> ET.Element:
    return ET.SubElement(root, tag, epic.container_attrs.get(tag, {}))


def encode_epic(epic: Epic) -> str:
    """Render the canonical XML document for *epic*."""
    root = ET.Element("epic", {"id": epic.id, "name": epic.name, "status": epic.status})
    _set_ts(root, "created_at", epic.created_at)
    _sub_text(root, "assignee", epic.assignee)
    _sub_text(root, "description", epic.description)
    _restore(root, epic.extra_attrs, epic.extra_elements)
    if epic.current_state is not None:
        state = ET.SubElement(root, "current_state")
        _sub_text(state, "active_phase", epic.current_state.active_phase or "")
        _sub_text(state, "active_task", epic.current_state.active_task or "")
        _sub_text(state, "next_action", epic.current_state.next_action, always=True)
        _restore(state, epic.current_state.extra_attrs, epic.current_state.extra_elements)
    phases = _container(root, epic, "phases")
    for phase in epic.phases:
        _encode_phase(phases, phase)
    tasks = _container(root, epic, "tasks")
    for task in epic.tasks:
        _encode_task(tasks, task)
    tests = _container(root, epic, "tests")
    for test in epic.tests:
        _encode_test(tests, test)
    events = _container(root, epic, "events")
    for event in epic.events:
        _encode_event(events, event)
    ET.indent(root, space="  ")
    return XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n"


# ---------------------------------------------------------------------------
# Repair
# ---------------------------------------------------------------------------

_UNTERMINATED_ENTITY = re.compile(r"&(amp|lt|gt|quot|apos)(?=\s)")
_STRAY_AMPERSAND = re.compile(r"&(?!(?:amp|lt|gt|quot|apos|#\d+|#x[0-9a-fA-F]+);)")
# A "<" that cannot open markup, or whose run reaches another "<" before any ">".
_STRAY_LESS_THAN = re.compile(r"<(?![A-Za-z_:/!?])|<(?=[^<>]*<)")


@dataclass
class XMLRepair:
    line: int
    description: str

    def to_dict(self) -> XMLRepairDict:
        return {"line": self.line, "description": self.description}


def repair_xml(text: str) -> tuple[str, list[XMLRepair]]:
    """Escape characters that hand edits commonly leave unescaped.

    Known entities missing their semicolon are terminated, and any other
    stray ``&`` or ``<`` in text content is escaped. Returns the repaired
    text and one ``XMLRepair`` per change; the text is returned unchanged
    when there is nothing to repair. The result is not validated here.
    """
    repairs: list[XMLRepair] = []

    def line_of(source: str, offset: int) -> int:
        return source.count("\n", 0, offset) + 1

    def terminate(match: re.Match[str]) -> str:
        repairs.append(XMLRepair(line_of(match.string, match.start()), f"Added missing ';' to &{match.group(1)}"))
        return f"&{match.group(1)};"

    def escape_ampersand(match: re.Match[str]) -> str:
        repairs.append(XMLRepair(line_of(match.string, match.start()), "Escaped '&' as &amp;"))
        return "&amp;"

    def escape_less_than(match: re.Match[str]) -> str:
        repairs.append(XMLRepair(line_of(match.string, match.start()), "Escaped '<' in text as &lt;"))
        return "&lt;"

    text = _UNTERMINATED_ENTITY.sub(terminate, text)
    text = _STRAY_AMPERSAND.sub(escape_ampersand, text)
    text = _STRAY_LESS_THAN.sub(escape_less_than, text)
    if repairs:
        logger.debug("Repaired %d XML escaping problem(s)", len(repairs))
    return text, repairs
