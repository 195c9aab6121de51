"""OpenAI API integration for FocusFlow.

Turns a free-text description of a day ("Study math 9-10, 1h workout, call
mom") into task descriptors. Replies are sanitized before they reach the
normal task creation path, so the model can never produce a task that manual
entry would reject.
"""

import json
import logging
import os
import re
from typing import Any, List, Optional

from dotenv import load_dotenv
from openai import APIError, OpenAI

from focusflow.errors import InvalidFormat
from focusflow.models.constants import (
    AI_TITLE_MAX_LENGTH,
    DEFAULT_TASK_TITLE,
    DEFAULT_EARLIEST_START,
    DEFAULT_LATEST_END,
    MAX_FLEXIBLE_DURATION_MIN,
    MAX_PREFERRED_TIME_SLOTS,
    MIN_FLEXIBLE_DURATION_MIN,
)
from focusflow.engine.time_utils import is_valid_time
from focusflow.models.task import TaskDescriptor, TimeSlot
from focusflow.models.task_factory import parse_descriptor

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

SCHEDULE_SYSTEM_PROMPT = """You are "FocusFlow AI", a concise productivity assistant.

Your sole output must be ONE valid JSON array, no markdown and no comments. If you are unsure, output [].

Supported task shapes (only these keys):
1. FIXED    -> {"title","start","end"}
2. FLEXIBLE -> {"title","isFlexible":true,"duration","preferredTimeSlots","earliestStart","latestEnd"}
   preferredTimeSlots is an array of "morning" | "afternoon" | "evening" | "anytime".
3. TIMELESS -> {"title","isTimeless":true}

Constraints:
- Times in 24h HH:MM (zero-padded). Start < End, same day.
- duration is minutes (integer 15 - 240).
- Title under 38 characters, starting with an action verb.
- No overlapping times between FIXED tasks.
- An exact time or range means FIXED; "flexible" or "anytime" means FLEXIBLE; otherwise TIMELESS.

Examples:
Input: "Study math from 9-10"
Output: [{"title":"Study Mathematics","start":"09:00","end":"10:00"}]

Input: "1h workout"
Output: [{"title":"Workout","isFlexible":true,"duration":60,"preferredTimeSlots":["morning"],"earliestStart":"06:00","latestEnd":"20:00"}]

Input: "Call mom"
Output: [{"title":"Call Mom","isTimeless":true}]"""

_FENCE_PATTERN = re.compile(r"```(?:json)?\n?")
_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


def extract_json_from_reply(reply: str) -> str:
    """Pull the JSON array out of a model reply.

    Strips markdown fences, then takes the outermost [...] or wraps a lone
    {...} object into an array.

    Raises:
        InvalidFormat: If the reply contains no JSON
    """
    cleaned = _FENCE_PATTERN.sub("", reply or "").strip()

    match = _ARRAY_PATTERN.search(cleaned)
    if match:
        return match.group(0)
    match = _OBJECT_PATTERN.search(cleaned)
    if match:
        return f"[{match.group(0)}]"

    try:
        json.loads(cleaned)
        return cleaned
    except json.JSONDecodeError:
        raise InvalidFormat("No valid JSON found in model reply") from None


def _sanitize_slots(value: Any) -> List[str]:
    if not isinstance(value, list):
        return [TimeSlot.ANYTIME.value]
    allowed = {slot.value for slot in TimeSlot}
    slots = [s for s in value[:MAX_PREFERRED_TIME_SLOTS] if isinstance(s, str) and s in allowed]
    return slots or [TimeSlot.ANYTIME.value]


def _sanitize_one(obj: Any) -> Optional[dict]:
    if not isinstance(obj, dict):
        return None
    title = obj.get("title")
    if isinstance(title, str) and title.strip():
        base = {"title": title[:AI_TITLE_MAX_LENGTH]}
    else:
        base = {"title": DEFAULT_TASK_TITLE}

    if obj.get("isTimeless"):
        return {**base, "schedule": {"kind": "timeless"}}

    if obj.get("isFlexible"):
        try:
            duration = float(obj.get("duration"))
        except (TypeError, ValueError):
            return None
        if not (MIN_FLEXIBLE_DURATION_MIN <= duration <= MAX_FLEXIBLE_DURATION_MIN) or duration != int(duration):
            return None
        earliest = obj.get("earliestStart")
        latest = obj.get("latestEnd")
        return {
            **base,
            "schedule": {
                "kind": "flexible",
                "duration_min": int(duration),
                "preferred_time_slots": _sanitize_slots(obj.get("preferredTimeSlots")),
                "earliest_start": earliest if is_valid_time(earliest) else DEFAULT_EARLIEST_START,
                "latest_end": latest if is_valid_time(latest) else DEFAULT_LATEST_END,
            },
        }

    start, end = obj.get("start"), obj.get("end")
    if is_valid_time(start) and is_valid_time(end):
        return {**base, "schedule": {"kind": "fixed", "start": start, "end": end}}
    return None


def sanitize_descriptors(raw: Any) -> List[TaskDescriptor]:
    """Validate raw model output, dropping entries that do not form a valid task."""
    if not isinstance(raw, list):
        raw = [raw]
    descriptors: List[TaskDescriptor] = []
    for obj in raw:
        data = _sanitize_one(obj)
        if data is None:
            logger.debug("Dropped unusable task from model reply")
            continue
        try:
            descriptors.append(parse_descriptor(data))
        except InvalidFormat as e:
            logger.debug(f"Dropped invalid task from model reply: {e}")
    return descriptors


class OpenAIScheduleGenerator:
    """Generates task descriptors from a free-text prompt."""

    def __init__(self, api_key: Optional[str] = None, model: str = OPENAI_MODEL):
        """Initialize the generator.

        Args:
            api_key: OpenAI API key. If None, reads from OPENAI_API_KEY environment variable.
            model: Chat completion model name

        Note:
            Without an API key the generator still initializes; `generate` then
            returns an empty list.
        """
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model
        self.client = None

        if self.api_key:
            self.client = OpenAI(api_key=self.api_key)
        else:
            logger.warning("OPENAI_API_KEY not found in environment. Schedule generation will not be available.")

    @property
    def available(self) -> bool:
        return self.client is not None

    def generate(self, prompt: str) -> List[TaskDescriptor]:
        """Ask the model for tasks matching `prompt`.

        Returns:
            Sanitized descriptors. Empty if the client is unavailable, the
            prompt is empty, or the API call fails.

        Raises:
            InvalidFormat: If the model reply contains no parseable JSON
        """
        if not self.client:
            logger.debug("OpenAI client not initialized. Returning no tasks.")
            return []
        if not prompt or not prompt.strip():
            return []

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SCHEDULE_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt.strip()},
                ],
                temperature=0.3,
                max_tokens=1000,
            )
        except APIError as e:
            error_code = getattr(e, 'code', None)
            status_code = getattr(e, 'status_code', None)

            if error_code == 'insufficient_quota':
                logger.warning("OpenAI API quota insufficient. Please check billing/payment method in OpenAI dashboard.")
            elif status_code == 429:
                logger.warning("OpenAI API rate limit exceeded. Please wait before retrying.")
            else:
                logger.error(f"OpenAI API error: {status_code or 'unknown'} ({error_code or 'unknown'})")
            # Full error messages may echo request content.
            return []

        content = (response.choices[0].message.content or "").strip()
        try:
            raw = json.loads(extract_json_from_reply(content))
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse model reply as JSON: {e}")
            raise InvalidFormat("Model reply was not valid JSON") from e

        descriptors = sanitize_descriptors(raw)
        logger.debug(f"Model generated {len(descriptors)} tasks")
        return descriptors
