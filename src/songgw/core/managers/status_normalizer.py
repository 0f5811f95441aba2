"""Maps heterogeneous provider status payloads onto one NormalizedStatus.

Every field is looked up through an ordered list of alias paths. A path is a
dotted key sequence that may index into lists (``response.sunoData[0].audioUrl``).
Paths are tried against the unwrapped envelope (``raw["data"]`` when that is
a mapping) before the raw payload itself, and the first usable value wins.
Supporting a new provider shape means appending aliases here.
"""

import math
import re
from functools import lru_cache
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from songgw.core.models.job import JobStatus, NormalizedStatus

STATUS_PATHS: Sequence[str] = ("status", "state", "jobStatus", "result.status")

AUDIO_URL_PATHS: Sequence[str] = (
    "audioUrl",
    "audio_url",
    "audio.url",
    "audio[0].url",
    "files[0].url",
    "data[0].audio_url",
    "data[0].audioUrl",
    "data[0].url",
    "response.sunoData[0].audioUrl",
    "response.data[0].audio_url",
    "sunoData[0].audioUrl",
    "clips[0].audio_url",
    "url",
)

PROGRESS_PATHS: Sequence[str] = ("progress", "percent", "percentage")

RECORD_ID_PATHS: Sequence[str] = ("recordId", "record_id", "data.recordId", "id")

ETA_PATHS: Sequence[str] = ("etaSeconds", "eta", "estimatedTime", "estimated_time")

ERROR_MESSAGE_PATHS: Sequence[str] = ("errorMessage", "error_message", "error", "msg", "message")

# lower-cased provider words with a known meaning; anything else is "processing"
STATUS_VOCABULARY: Mapping[str, JobStatus] = {
    "success": JobStatus.completed,
    "succeeded": JobStatus.completed,
    "complete": JobStatus.completed,
    "completed": JobStatus.completed,
    "done": JobStatus.completed,
    "finished": JobStatus.completed,
    "pending": JobStatus.pending,
    "queued": JobStatus.pending,
    "waiting": JobStatus.pending,
    "submitted": JobStatus.pending,
    "processing": JobStatus.processing,
    "running": JobStatus.processing,
    "in_progress": JobStatus.processing,
    "text_success": JobStatus.processing,
    "first_success": JobStatus.processing,
}

_FAILURE_MARKERS = ("fail", "error", "exception")

_TOKEN_RE = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


@lru_cache(maxsize=None)
def _parse_path(path: str) -> tuple:
    tokens = []
    for key, index in _TOKEN_RE.findall(path):
        tokens.append(int(index) if index else key)
    return tuple(tokens)


def _lookup(node: Any, path: str) -> Any:
    for token in _parse_path(path):
        if isinstance(token, int):
            if not isinstance(node, list) or token >= len(node):
                return None
            node = node[token]
        else:
            if not isinstance(node, Mapping):
                return None
            node = node.get(token)
        if node is None:
            return None
    return node


def _first(
    sources: Iterable[Mapping[str, Any]],
    paths: Sequence[str],
    extract: Callable[[Any], Any],
) -> Any:
    for source in sources:
        for path in paths:
            value = extract(_lookup(source, path))
            if value is not None:
                return value
    return None


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def _as_string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%").strip())
        except ValueError:
            return None
    else:
        return None
    # NaN and +-inf are not JSON-encodable
    if not math.isfinite(number):
        return None
    return number


def _as_progress(value: Any) -> Optional[int]:
    number = _as_number(value)
    if number is None:
        return None
    return int(round(min(100.0, max(0.0, number))))


def map_status_word(word: Optional[str]) -> Optional[JobStatus]:
    """Translate a provider status word; None when the word is absent."""
    if not word:
        return None
    key = word.strip().lower()
    if key in STATUS_VOCABULARY:
        return STATUS_VOCABULARY[key]
    if any(marker in key for marker in _FAILURE_MARKERS):
        return JobStatus.failed
    return JobStatus.processing


def normalize_status(raw: Any) -> NormalizedStatus:
    """Normalize one provider response. Never raises."""
    if not isinstance(raw, Mapping) or not raw:
        return NormalizedStatus()

    envelope = raw.get("data")
    sources = [envelope, raw] if isinstance(envelope, Mapping) else [raw]

    raw_status = _first(sources, STATUS_PATHS, _as_text)
    audio_url = _first(sources, AUDIO_URL_PATHS, _as_string)
    progress = _first(sources, PROGRESS_PATHS, _as_progress)
    record_id = _first(sources, RECORD_ID_PATHS, _as_text)
    eta_seconds = _first(sources, ETA_PATHS, _as_number)

    status = map_status_word(raw_status)
    if status != JobStatus.failed and audio_url:
        status = JobStatus.completed
    elif status is None:
        status = JobStatus.processing

    error_message = None
    if status == JobStatus.failed:
        error_message = _first(sources, ERROR_MESSAGE_PATHS, _as_string) or raw_status

    return NormalizedStatus(
        status=status,
        audio_url=audio_url,
        progress=progress,
        record_id=record_id,
        eta_seconds=eta_seconds,
        raw_status=raw_status,
        error_message=error_message,
    )
