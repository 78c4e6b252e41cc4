"""Pulls the first JSON structure out of free-form model output."""

import json
from typing import Any

from sidecar.analysis.exceptions import AnalysisUnavailable

_DECODER = json.JSONDecoder()

# Far above any completion budget the router requests
_MAX_INPUT_CHARS = 200_000
# Bracketed prose such as "[PERSON_1]" fails fast; runaway output does not
_MAX_FAILED_STARTS = 256


def extract_json(raw: str, prefer: type | tuple[type, ...] = (dict, list)) -> Any:
    """Return the first balanced JSON object or array found in *raw*.

    Leading/trailing commentary and code fences are skipped. Structures
    nested inside an earlier match are not considered separately. When
    several top-level structures exist, the first one that is an instance of
    *prefer* wins; otherwise the first structure found is returned.

    Raises:
        AnalysisUnavailable: if *raw* contains no decodable object or array,
            is too long, or nests deeper than the decoder can follow.
    """
    if not isinstance(raw, str):
        raise AnalysisUnavailable("Model output is not text")
    if len(raw) > _MAX_INPUT_CHARS:
        raise AnalysisUnavailable(f"Model output too long ({len(raw)} chars)")

    first: Any = None
    found = False
    failed = 0
    idx = 0
    length = len(raw)
    while idx < length:
        if raw[idx] not in "{[":
            idx += 1
            continue
        try:
            value, end = _DECODER.raw_decode(raw, idx)
        except json.JSONDecodeError:
            failed += 1
            if failed > _MAX_FAILED_STARTS:
                break
            idx += 1
            continue
        except RecursionError as exc:
            raise AnalysisUnavailable("Model output nests too deeply") from exc
        if isinstance(value, prefer):
            return value
        if not found:
            first, found = value, True
        idx = end

    if not found:
        raise AnalysisUnavailable("No JSON structure found in model output")
    return first
