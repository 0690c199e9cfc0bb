"""Maps one work record to exactly one billing activity.

Rules are evaluated in list order; the first match wins and anything that
matches nothing is NORMAL. The order is part of the contract.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple


class Activity(str, Enum):
    NORMAL = "NORMAL"
    TRAINEE = "TRAINEE"
    INSPECTION = "INSPECTION"
    M_1052 = "M_1052"
    M_SHOMEN = "M_SHOMEN"
    M_12SHAKU = "M_12SHAKU"


ACTIVITY_NAMES: Dict[Activity, str] = {
    Activity.NORMAL: "通常作業",
    Activity.TRAINEE: "実習生",
    Activity.INSPECTION: "検品",
    Activity.M_1052: "1052",
    Activity.M_SHOMEN: "正面盤",
    Activity.M_12SHAKU: "12尺",
}

ACTIVITY_ORDER: Tuple[Activity, ...] = tuple(Activity)

MACHINE_ACTIVITIES: Dict[str, Activity] = {
    "1052": Activity.M_1052,
    "正面盤": Activity.M_SHOMEN,
    "12尺": Activity.M_12SHAKU,
}

INSPECTION_KEYWORD = "検品"

# Katakana (incl. middle dot and prolonged sound mark), phonetic extensions, whitespace.
_TRAINEE_NAME = re.compile(r"^[\u30a0-\u30ff\u31f0-\u31ff\s]+$")


class LaborCategory(str, Enum):
    LABOR = "LABOR"
    MACHINE = "MACHINE"


@dataclass(frozen=True)
class WorkRecordView:
    """The fields of a work record that billing needs, already joined."""

    id: int
    start_time: datetime
    end_time: datetime
    worker_name: str = ""
    machine_name: Optional[str] = None
    work_description: Optional[str] = None


@dataclass(frozen=True)
class ActivityRule:
    name: str
    predicate: Callable[[WorkRecordView], bool]
    activity: Optional[Activity] = None
    resolve: Optional[Callable[[WorkRecordView], Activity]] = None

    def apply(self, record: WorkRecordView) -> Optional[Activity]:
        if not self.predicate(record):
            return None
        if self.resolve is not None:
            return self.resolve(record)
        return self.activity


def is_trainee_name(name: Optional[str]) -> bool:
    if not name or not name.strip():
        return False
    return _TRAINEE_NAME.match(name) is not None


def mentions_inspection(description: Optional[str]) -> bool:
    return bool(description) and INSPECTION_KEYWORD in description


def _machine_key(record: WorkRecordView) -> str:
    return (record.machine_name or "").strip()


DEFAULT_RULES: Tuple[ActivityRule, ...] = (
    ActivityRule("trainee_name", lambda r: is_trainee_name(r.worker_name), Activity.TRAINEE),
    ActivityRule("inspection_keyword", lambda r: mentions_inspection(r.work_description), Activity.INSPECTION),
    ActivityRule(
        "named_machine",
        lambda r: _machine_key(r) in MACHINE_ACTIVITIES,
        resolve=lambda r: MACHINE_ACTIVITIES[_machine_key(r)],
    ),
)


class ActivityClassifier:
    def __init__(self, rules: Iterable[ActivityRule] = DEFAULT_RULES, default: Activity = Activity.NORMAL):
        self.rules: List[ActivityRule] = list(rules)
        self.default = default

    def classify(self, record: WorkRecordView) -> Activity:
        for rule in self.rules:
            activity = rule.apply(record)
            if activity is not None:
                return activity
        return self.default

    __call__ = classify


def activity_name(activity) -> str:
    try:
        return ACTIVITY_NAMES[Activity(activity)]
    except ValueError:
        return str(activity)


def labor_category(activity) -> LaborCategory:
    if str(Activity(activity).value).startswith("M_"):
        return LaborCategory.MACHINE
    return LaborCategory.LABOR


def parse_activity(value: str) -> Activity:
    try:
        return Activity(str(value))
    except ValueError as exc:
        raise ValueError(f"Unknown activity: {value}") from exc
