"""Deterministic, rule-based PII entity resolver using ICU transliteration.

Processing flow:
1. Normalize Unicode (NFC) to ensure precomposed characters.
2. Transliterate full text to Latin-ASCII-lowercase via ICU, keeping a
   character-level position mapping (transliterated -> original).
3. Run each rule over the immutable transliterated text, in priority order:
   a. Email addresses (generic shape plus literal roster emails).
   b. Phone numbers.
   c. Provider user mentions (e.g. Slack ``<@U123ABC>``).
   d. Roster names and name fragments, whole-word.
   e. URL hosts (path and query stay untouched).
   f. IPv4 dotted quads.
   g. Caller-supplied custom rules (matched on the original text).
4. Map spans back to original offsets; a span is accepted only if it does
   not overlap a span claimed by a higher-priority rule.
5. Return the accepted entities in text order.
"""

from __future__ import annotations

import ipaddress
import re
import threading
import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass
from typing import ClassVar

import icu  # type: ignore[import-untyped]

from sidecar.anonymization.exceptions import AnonymizationError
from sidecar.anonymization.models import (
    EMAIL,
    IP_ADDRESS,
    PERSON,
    PHONE,
    URL_DOMAIN,
    Entity,
    KnownParticipantRoster,
)
from sidecar.logging.logger import Log


@dataclass
class _Detection:
    """A candidate PII span in original-text coordinates."""

    kind: str
    start: int
    end: int
    key: str


class EntityResolver:
    """Detects PII spans with ordered pattern rules and a participant roster.

    The resolver holds no per-session state. It is safe to share between
    sessions and threads.
    """

    _ICU_TRANSFORM: ClassVar[str] = "Any-Latin; Latin-ASCII; Lower"

    # All built-in patterns run on lowercased ASCII text.
    _EMAIL_RE: ClassVar[re.Pattern[str]] = re.compile(
        r"(?<![\w.%+\-])[a-z0-9._%+\-]+@[a-z0-9.\-]+\.[a-z]{2,}(?![\w])",
    )
    _PHONE_RE: ClassVar[re.Pattern[str]] = re.compile(
        r"(?<![\w+.])"
        r"(?:"
        r"\+\d{1,3}(?:[\s.\-]?\(?\d{1,4}\)?){2,5}"
        r"|"
        r"\(?\d{3}\)?[\s.\-]?\d{3}[\s.\-]?\d{4}"
        r")"
        r"(?!\w)(?!\.\d)",
    )
    _MENTION_RE: ClassVar[re.Pattern[str]] = re.compile(
        r"<@(?P<user>[a-z0-9]+)(?:\|[^>\n]*)?>",
    )
    _URL_RE: ClassVar[re.Pattern[str]] = re.compile(
        r"https?://(?:[^\s/@<>\"\]]*@)?(?P<host>[^\s/:?#<>\"\]@]+)",
    )
    _IPV4_RE: ClassVar[re.Pattern[str]] = re.compile(
        r"(?<![\w.])(?:\d{1,3}\.){3}\d{1,3}(?!\w)(?!\.\d)",
    )
    _HOST_TRAILING: ClassVar[str] = ".,;:!?)'"

    def __init__(
        self,
        custom_rules: Sequence[tuple[str, re.Pattern[str]]] | None = None,
    ) -> None:
        self._transliterator: icu.Transliterator = icu.Transliterator.createInstance(
            self._ICU_TRANSFORM
        )
        self._translit_lock = threading.Lock()
        self._char_cache: dict[str, str] = {}
        self._custom_rules = list(custom_rules or [])

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def detect(
        self,
        text: str,
        roster: KnownParticipantRoster | None = None,
        *,
        name_pattern: re.Pattern[str] | None = None,
    ) -> list[Entity]:
        """Return non-overlapping PII entities in *text*, in text order.

        Offsets refer to the NFC-normalized form of *text*; see normalize().
        Callers that detect repeatedly against one roster pass the result of
        name_pattern() to skip recompiling it.
        """
        roster = roster or KnownParticipantRoster()
        try:
            if name_pattern is None:
                name_pattern = self.name_pattern(roster)
            return self._run(text, roster, name_pattern)
        except AnonymizationError:
            raise
        except Exception as exc:
            raise AnonymizationError(f"Entity detection failed: {exc}") from exc

    @staticmethod
    def normalize(text: str) -> str:
        """NFC form of *text*; the coordinate space detect() reports in."""
        return unicodedata.normalize("NFC", text)

    def name_key(self, name: str) -> str:
        """Case-, diacritic- and whitespace-insensitive identity of a name."""
        transliterated, _ = self._transliterate_with_mapping(self.normalize(name))
        return " ".join(transliterated.split())

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _run(
        self,
        text: str,
        roster: KnownParticipantRoster,
        name_pattern: re.Pattern[str] | None,
    ) -> list[Entity]:
        if not text:
            return []

        normalized = self.normalize(text)
        transliterated, trans_to_orig = self._transliterate_with_mapping(normalized)

        candidates: list[list[_Detection]] = [
            self._detect_emails(transliterated, trans_to_orig, normalized, roster),
            self._detect_phones(transliterated, trans_to_orig),
            self._detect_mentions(transliterated, trans_to_orig, normalized),
            self._detect_names(transliterated, trans_to_orig, name_pattern),
            self._detect_url_hosts(transliterated, trans_to_orig),
            self._detect_ipv4(transliterated, trans_to_orig, normalized),
            self._detect_custom(normalized),
        ]

        accepted = self._claim(candidates)
        entities = [
            Entity(
                kind=d.kind,
                original_text=normalized[d.start:d.end],
                normalized_key=d.key,
                start=d.start,
                end=d.end,
            )
            for d in accepted
        ]
        Log.debug(f"Resolver detected {len(entities)} entities")
        return entities

    @staticmethod
    def _claim(candidates: list[list[_Detection]]) -> list[_Detection]:
        """Accept spans rule by rule; a claimed span is never re-matched."""
        accepted: list[_Detection] = []
        for rule_detections in candidates:
            for detection in rule_detections:
                if detection.start >= detection.end:
                    continue
                if any(
                    detection.start < other.end and other.start < detection.end
                    for other in accepted
                ):
                    continue
                accepted.append(detection)
        accepted.sort(key=lambda d: d.start)
        return accepted

    # ------------------------------------------------------------------
    # Transliteration with char mapping
    # ------------------------------------------------------------------

    def _transliterate_with_mapping(self, text: str) -> tuple[str, list[int]]:
        """Transliterate *text* character-by-character via ICU.

        Returns:
            (transliterated_text, trans_to_orig) where trans_to_orig[j]
            is the index in *text* that produced transliterated char j.
        """
        parts: list[str] = []
        trans_to_orig: list[int] = []

        for orig_idx, ch in enumerate(text):
            t = self._transliterate_char(ch)
            parts.append(t)
            trans_to_orig.extend([orig_idx] * len(t))

        return "".join(parts), trans_to_orig

    def _transliterate_char(self, ch: str) -> str:
        if ch.isascii():
            return ch.lower()
        cached = self._char_cache.get(ch)
        if cached is not None:
            return cached
        # ICU transliterators are not safe for concurrent use
        with self._translit_lock:
            result = self._transliterator.transliterate(ch)
        self._char_cache[ch] = result
        return result

    @staticmethod
    def _to_original(trans_start: int, trans_end: int, trans_to_orig: list[int]) -> tuple[int, int]:
        # trans_end is exclusive; include the whole original char of the last hit
        return trans_to_orig[trans_start], trans_to_orig[trans_end - 1] + 1

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _detect_emails(
        self,
        transliterated: str,
        trans_to_orig: list[int],
        original: str,
        roster: KnownParticipantRoster,
    ) -> list[_Detection]:
        detections: list[_Detection] = []
        for m in self._EMAIL_RE.finditer(transliterated):
            start, end = self._to_original(m.start(), m.end(), trans_to_orig)
            detections.append(_Detection(EMAIL, start, end, original[start:end].lower()))

        # Roster emails that the generic shape misses (e.g. "ops@localhost")
        lowered = original.lower()
        for email in sorted(roster.emails, key=len, reverse=True):
            idx = lowered.find(email)
            while idx != -1:
                end = idx + len(email)
                before_ok = idx == 0 or not (lowered[idx - 1].isalnum() or lowered[idx - 1] in "._%+-")
                after_ok = end == len(lowered) or not lowered[end].isalnum()
                if before_ok and after_ok:
                    detections.append(_Detection(EMAIL, idx, end, email))
                idx = lowered.find(email, idx + 1)
        return detections

    def _detect_phones(self, transliterated: str, trans_to_orig: list[int]) -> list[_Detection]:
        detections: list[_Detection] = []
        for m in self._PHONE_RE.finditer(transliterated):
            digits = re.sub(r"\D", "", m.group())
            start, end = self._to_original(m.start(), m.end(), trans_to_orig)
            detections.append(_Detection(PHONE, start, end, digits))
        return detections

    def _detect_mentions(
        self,
        transliterated: str,
        trans_to_orig: list[int],
        original: str,
    ) -> list[_Detection]:
        detections: list[_Detection] = []
        for m in self._MENTION_RE.finditer(transliterated):
            start, end = self._to_original(m.start(), m.end(), trans_to_orig)
            user_start, user_end = self._to_original(
                m.start("user"), m.end("user"), trans_to_orig
            )
            user_id = original[user_start:user_end].upper()
            detections.append(_Detection(PERSON, start, end, f"<@{user_id}>"))
        return detections

    def _detect_names(
        self,
        transliterated: str,
        trans_to_orig: list[int],
        pattern: re.Pattern[str] | None,
    ) -> list[_Detection]:
        if pattern is None:
            return []
        detections: list[_Detection] = []
        for m in pattern.finditer(transliterated):
            start, end = self._to_original(m.start(), m.end(), trans_to_orig)
            detections.append(_Detection(PERSON, start, end, " ".join(m.group().split())))
        return detections

    def _detect_url_hosts(self, transliterated: str, trans_to_orig: list[int]) -> list[_Detection]:
        detections: list[_Detection] = []
        for m in self._URL_RE.finditer(transliterated):
            host_start, host_end = m.span("host")
            while host_end > host_start and transliterated[host_end - 1] in self._HOST_TRAILING:
                host_end -= 1
            if host_end <= host_start:
                continue
            start, end = self._to_original(host_start, host_end, trans_to_orig)
            detections.append(
                _Detection(URL_DOMAIN, start, end, transliterated[host_start:host_end])
            )
        return detections

    def _detect_ipv4(
        self,
        transliterated: str,
        trans_to_orig: list[int],
        original: str,
    ) -> list[_Detection]:
        detections: list[_Detection] = []
        for m in self._IPV4_RE.finditer(transliterated):
            try:
                ipaddress.IPv4Address(m.group())
            except ValueError:
                continue
            start, end = self._to_original(m.start(), m.end(), trans_to_orig)
            detections.append(_Detection(IP_ADDRESS, start, end, original[start:end]))
        return detections

    def _detect_custom(self, original: str) -> list[_Detection]:
        detections: list[_Detection] = []
        for kind, pattern in self._custom_rules:
            for m in pattern.finditer(original):
                detections.append(_Detection(kind, m.start(), m.end(), m.group().lower()))
        return detections

    # ------------------------------------------------------------------
    # Roster name pattern
    # ------------------------------------------------------------------

    def name_pattern(self, roster: KnownParticipantRoster) -> re.Pattern[str] | None:
        """Compile the whole-word matcher for *roster* names; None if it has none.

        The pattern embeds participant names, so it belongs to the caller's
        session and is never retained here.
        """
        keys = {self.name_key(name) for name in roster.names}
        keys.discard("")
        if not keys:
            return None
        # Longest first so "jane doe" wins over "jane" at the same offset
        alternatives = [
            r"\s+".join(re.escape(token) for token in key.split())
            for key in sorted(keys, key=len, reverse=True)
        ]
        return re.compile(r"(?<!\w)(?:" + "|".join(alternatives) + r")(?!\w)")
