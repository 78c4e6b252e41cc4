"""Stateful, reversible anonymization scoped to one situation.

A session owns a forward map ``(kind, normalized_key) -> placeholder``, its
inverse ``placeholder -> original text`` and one counter per kind. The
forward map is append-only until reset(). Placeholder registration is
atomic, so concurrent anonymize() calls agree on one placeholder per entity.
Sessions are never persisted.
"""

from __future__ import annotations

import re
import secrets
import threading
from collections.abc import Iterable

from sidecar.anonymization.models import (
    EMAIL,
    IP_ADDRESS,
    PERSON,
    PHONE,
    URL_DOMAIN,
    AnonymizationResult,
    AnonymizedPayload,
    Artifact,
    KnownParticipantRoster,
    Participant,
)
from sidecar.anonymization.resolver import EntityResolver
from sidecar.logging.logger import Log


def placeholder_for(kind: str, counter: int) -> str:
    """Render the stable placeholder shape for *kind*.

    Emails and domains keep a plausible shape so downstream structure
    assumptions ("this looks like an email") still hold.
    """
    if kind == PERSON:
        return f"[PERSON_{counter}]"
    if kind == EMAIL:
        return f"person{counter}@example.com"
    if kind == PHONE:
        return f"[PHONE_{counter}]"
    if kind == URL_DOMAIN:
        return f"company{counter}.example.com"
    if kind == IP_ADDRESS:
        return f"[IP_{counter}]"
    label = re.sub(r"[^A-Z0-9]+", "_", kind.upper()).strip("_") or "ENTITY"
    return f"[{label}_{counter}]"


class AnonymizationSession:
    """Reversible PII substitution with a stable per-session bijection."""

    def __init__(
        self,
        resolver: EntityResolver | None = None,
        *,
        min_fragment_length: int = 3,
    ) -> None:
        self._resolver = resolver if resolver is not None else EntityResolver()
        self._min_fragment_length = min_fragment_length
        self._lock = threading.Lock()
        self._session_id = secrets.token_hex(8)
        self._roster = KnownParticipantRoster()
        self._name_pattern: re.Pattern[str] | None = None
        self._forward: dict[tuple[str, str], str] = {}
        self._reverse: dict[str, str] = {}
        self._counters: dict[str, int] = {}
        self._issued: set[str] = set()
        self._reverse_pattern: re.Pattern[str] | None = None

    @property
    def session_id(self) -> str:
        return self._session_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register_participants(self, participants: Iterable[Participant]) -> None:
        """Merge participant names and emails into the roster; additive only.

        No placeholders are issued here. They are assigned on first
        detection by anonymize().
        """
        addition = KnownParticipantRoster.from_participants(
            participants, self._min_fragment_length
        )
        with self._lock:
            self._roster = self._roster.merge(addition)
            self._name_pattern = self._resolver.name_pattern(self._roster)
        Log.debug(
            f"Session {self._session_id}: roster has {len(self._roster.names)} names, "
            f"{len(self._roster.emails)} emails"
        )

    def anonymize(self, text: str) -> AnonymizationResult:
        """Replace every detected entity in *text* with its placeholder.

        Returns the anonymized payload plus an audit list in detection order.
        The audit list holds original values and must stay local.
        """
        with self._lock:
            roster = self._roster
            name_pattern = self._name_pattern
        normalized = self._resolver.normalize(text)
        entities = self._resolver.detect(normalized, roster, name_pattern=name_pattern)

        parts: list[str] = []
        artifacts: list[Artifact] = []
        cursor = 0
        for entity in entities:
            placeholder = self._register(entity.kind, entity.normalized_key, entity.original_text)
            parts.append(normalized[cursor:entity.start])
            parts.append(placeholder)
            cursor = entity.end
            artifacts.append(
                Artifact(
                    type=entity.kind,
                    original=entity.original_text,
                    replacement=placeholder,
                    normalized_key=entity.normalized_key,
                )
            )
        parts.append(normalized[cursor:])

        payload = self._issue("".join(parts))
        if artifacts:
            Log.audit(
                f"Session {self._session_id}: replaced {len(artifacts)} entities "
                f"({', '.join(sorted({a.replacement for a in artifacts}))})"
            )
        return AnonymizationResult(payload=payload, artifacts=artifacts)

    def deanonymize(self, text: str) -> str:
        """Replace every known placeholder in *text* with its original value.

        Placeholders this session never issued are left untouched.
        Restoration is a single left-to-right pass, so restored values are
        never themselves re-substituted.
        """
        if not text:
            return text
        with self._lock:
            pattern = self._reverse_pattern
            reverse = dict(self._reverse)
        if pattern is None:
            return text
        return pattern.sub(lambda m: reverse.get(m.group(), m.group()), text)

    def reset(self) -> None:
        """Clear maps, counters, roster and issued payloads."""
        with self._lock:
            self._roster = KnownParticipantRoster()
            self._name_pattern = None
            self._forward.clear()
            self._reverse.clear()
            self._counters.clear()
            self._issued.clear()
            self._reverse_pattern = None
            self._session_id = secrets.token_hex(8)
        Log.debug("Anonymization session reset")

    def issued(self, payload: object) -> bool:
        """True if *payload* was produced by this session's anonymize()."""
        if not isinstance(payload, AnonymizedPayload):
            return False
        with self._lock:
            return payload.session_id == self._session_id and payload.issue_id in self._issued

    def entity_map(self) -> dict[str, str]:
        """Copy of the forward map as ``{"kind:key": placeholder}`` for local audit."""
        with self._lock:
            return {f"{kind}:{key}": placeholder for (kind, key), placeholder in self._forward.items()}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _register(self, kind: str, key: str, original: str) -> str:
        """Look up or create the placeholder for ``(kind, key)``; first caller wins."""
        with self._lock:
            existing = self._forward.get((kind, key))
            if existing is not None:
                return existing
            counter = self._counters.get(kind, 0) + 1
            self._counters[kind] = counter
            placeholder = placeholder_for(kind, counter)
            self._forward[(kind, key)] = placeholder
            self._reverse[placeholder] = original
            self._reverse_pattern = self._compile_reverse_pattern(self._reverse)
            return placeholder

    def _issue(self, text: str) -> AnonymizedPayload:
        issue_id = secrets.token_hex(8)
        with self._lock:
            self._issued.add(issue_id)
            session_id = self._session_id
        return AnonymizedPayload(text=text, session_id=session_id, issue_id=issue_id)

    @staticmethod
    def _compile_reverse_pattern(reverse: dict[str, str]) -> re.Pattern[str]:
        # Longest first. Unbracketed shapes need word boundaries so that
        # "person1@example.com" never matches inside "xperson1@example.com".
        alternatives = []
        for placeholder in sorted(reverse, key=len, reverse=True):
            escaped = re.escape(placeholder)
            if placeholder.startswith("["):
                alternatives.append(escaped)
            else:
                alternatives.append(r"(?<![\w.\-])" + escaped + r"(?![\w\-])")
        return re.compile("|".join(alternatives))
