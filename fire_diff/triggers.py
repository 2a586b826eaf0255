"""Cloud Functions trigger detection.

A block of code is a deployable endpoint when it calls one of the Firebase
Functions trigger builders. Version 1 triggers are reached through the
``functions.<category>.<builder>(`` namespace chain; version 2 triggers are
imported and called bare. ``onCall`` and ``onRequest`` exist in both APIs and
are told apart by the call shape.

Rules are evaluated in the order of :data:`TRIGGER_RULES`; the first match wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

V1 = "v1"
V2 = "v2"

SHARED_NAMES = ("onCall", "onRequest")

V1_CATEGORIES = (
    "https",
    "pubsub",
    "database",
    "firestore",
    "storage",
    "auth",
    "tasks",
    "analytics",
    "remoteConfig",
    "testLab",
    "crashlytics",
    "appDistribution",
    "alerts",
)

V1_ONLY_NAMES = (
    "schedule",
    "topic",
    "ref",
    "instance",
    "document",
    "object",
    "bucket",
    "user",
    "taskQueue",
    "onUpdate",
    "event",
    "testMatrix",
    "onNewFatalError",
    "onNewNonFatalError",
    "onNewAnr",
    "onNewTesterIosDevicePublished",
    "onNewAppFeedbackPublished",
    "onInAppFeedbackPublished",
    "onNewEnrollment",
    "onAccept",
    "onAppCrashDetected",
    "onDataWritten",
)

V2_ONLY_NAMES = (
    "onSchedule",
    "onTaskDispatched",
    "onMessagePublished",
    "onValueWritten",
    "onValueCreated",
    "onValueUpdated",
    "onValueDeleted",
    "onObjectFinalized",
    "onObjectArchived",
    "onObjectDeleted",
    "onObjectMetadataUpdated",
    "onDocumentWritten",
    "onDocumentCreated",
    "onDocumentUpdated",
    "onDocumentDeleted",
    "onUserCreated",
    "onUserDeleted",
    "onBlockingFunction",
    "beforeUserCreated",
    "beforeUserSignedIn",
    "onCustomEventPublished",
    "onLogWritten",
)


def _alternation(names: tuple[str, ...]) -> str:
    return "|".join(map(re.escape, names))


# functions.https.onCall(  /  functions.region("eu").runWith({...}).pubsub.schedule(
_NAMESPACE = r"\bfunctions(?:\s*\.\s*(?:region|runWith)\s*\([^)]*\))*"


def _namespaced(names: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(
        _NAMESPACE
        + rf"\s*\.\s*(?P<category>{_alternation(V1_CATEGORIES)})"
        + rf"\s*\.\s*(?P<name>{_alternation(names)})\s*\("
    )


def _bare(names: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(rf"\b(?P<name>{_alternation(names)})\s*\(")


@dataclass(frozen=True)
class TriggerInfo:
    is_endpoint: bool
    kind: str | None = None
    version: str | None = None


NOT_AN_ENDPOINT = TriggerInfo(is_endpoint=False)


def _namespaced_kind(match: re.Match[str]) -> str:
    return f"functions.{match.group('category')}.{match.group('name')}"


def _bare_kind(match: re.Match[str]) -> str:
    return match.group("name")


@dataclass(frozen=True)
class TriggerRule:
    name: str
    pattern: re.Pattern[str]
    version: str
    kind: Callable[[re.Match[str]], str]

    def match(self, text: str) -> TriggerInfo | None:
        m = self.pattern.search(text)
        if m is None:
            return None
        return TriggerInfo(is_endpoint=True, kind=self.kind(m), version=self.version)


TRIGGER_RULES: tuple[TriggerRule, ...] = (
    TriggerRule("v1-only", _namespaced(V1_ONLY_NAMES), V1, _namespaced_kind),
    TriggerRule("v2-only", _bare(V2_ONLY_NAMES), V2, _bare_kind),
    TriggerRule("shared-namespaced", _namespaced(SHARED_NAMES), V1, _namespaced_kind),
    TriggerRule("shared-bare", _bare(SHARED_NAMES), V2, _bare_kind),
)


def classify(block: str, rules: tuple[TriggerRule, ...] = TRIGGER_RULES) -> TriggerInfo:
    for rule in rules:
        info = rule.match(block)
        if info is not None:
            return info
    return NOT_AN_ENDPOINT
