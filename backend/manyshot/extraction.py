# -*- coding: utf-8 -*-
"""Pull a structured ``{"prediction": ...}`` answer out of raw model output."""

from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from manyshot.models import Prediction

logger = logging.getLogger(__name__)

NO_PREDICTION_MESSAGE = "No valid prediction found in model response."

_PREDICTION_PATTERN = re.compile(r'"prediction"\s*:\s*"((?:[^"\\]|\\.)*)"', flags=re.DOTALL)
_OPTION_PREFIX_PATTERN = re.compile(r"^\s*(?:[-*•]\s+|\d+[.)]\s+)")
_TRAILING_PUNCTUATION = ".!?,;:"


class ExtractionErrorKind(str, Enum):
    NO_PREDICTION_FOUND = "no_prediction_found"
    UNKNOWN_OPTION = "unknown_option"


class ExtractionError(ValueError):
    """Raised when a model response does not yield a usable prediction."""

    def __init__(self, kind: ExtractionErrorKind, message: str = NO_PREDICTION_MESSAGE) -> None:
        super().__init__(message)
        self.kind = kind


def _decode_json_string(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value


def extract_prediction(raw_text: str) -> Prediction:
    """Return the last ``"prediction": "<value>"`` pair found anywhere in the text.

    Later matches win so that a model restating its answer at the end of a
    longer reply is read correctly.
    """

    matches = _PREDICTION_PATTERN.findall(raw_text or "")
    if not matches:
        logger.debug("No prediction key found in response: %s", (raw_text or "")[:200])
        raise ExtractionError(ExtractionErrorKind.NO_PREDICTION_FOUND)

    value = _decode_json_string(matches[-1]).strip()
    if not value:
        raise ExtractionError(ExtractionErrorKind.NO_PREDICTION_FOUND)
    return Prediction(prediction=value)


def find_json_object(raw_text: str) -> Optional[str]:
    """Return the first top-level brace balanced ``{...}`` substring, if any."""

    first_brace = raw_text.find("{")
    if first_brace == -1:
        return None

    brace_count = 0
    in_string = False
    escape_next = False

    for i in range(first_brace, len(raw_text)):
        char = raw_text[i]

        if escape_next:
            escape_next = False
            continue

        if char == "\\":
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if not in_string:
            if char == "{":
                brace_count += 1
            elif char == "}":
                brace_count -= 1
                if brace_count == 0:
                    return raw_text[first_brace:i + 1]

    return None


def extract_json_prediction(raw_text: str) -> Prediction:
    """Lenient extraction for providers that are asked for JSON output.

    The first balanced JSON object is parsed; when nothing usable can be
    parsed the raw text itself becomes the prediction.
    """

    if not raw_text or not raw_text.strip():
        raise ExtractionError(ExtractionErrorKind.NO_PREDICTION_FOUND)

    raw_text = raw_text.strip()
    candidate = find_json_object(raw_text)
    payload: Optional[Dict[str, Any]] = None
    if candidate is not None:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as exc:
            logger.debug("JSON candidate could not be parsed: %s", exc)
        else:
            if isinstance(parsed, dict):
                payload = parsed

    if payload is not None and payload.get("prediction") is not None:
        value = str(payload["prediction"]).strip()
        if not value:
            raise ExtractionError(ExtractionErrorKind.NO_PREDICTION_FOUND)
        return Prediction(prediction=value)

    logger.debug("Falling back to raw text prediction (length=%s)", len(raw_text))
    return Prediction(prediction=raw_text)


def _normalise_option(value: str) -> str:
    value = _OPTION_PREFIX_PATTERN.sub("", value.strip())
    value = value.strip().strip("\"'`").strip()
    return value.rstrip(_TRAILING_PUNCTUATION).strip().casefold()


def match_option(prediction: Prediction, options: Iterable[str]) -> Prediction:
    """Map a prediction onto the literal answer option it names."""

    options = list(options)
    if prediction.prediction in options:
        return prediction

    wanted = _normalise_option(prediction.prediction)
    for option in options:
        if _normalise_option(option) == wanted:
            return Prediction(prediction=option)

    raise ExtractionError(
        ExtractionErrorKind.UNKNOWN_OPTION,
        f"Model answered '{prediction.prediction[:80]}', which is not one of the answer options.",
    )


__all__ = [
    "ExtractionError",
    "ExtractionErrorKind",
    "NO_PREDICTION_MESSAGE",
    "extract_json_prediction",
    "extract_prediction",
    "find_json_object",
    "match_option",
]
