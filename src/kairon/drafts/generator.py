"""
Draft generation client.

Sends free text (an agenda pasted from an email, a flyer, ...) to a
draft-generation endpoint and turns the structured reply into a new
Program with fresh identities.

The endpoint is slow and unreliable. generate() returns None on any
failure and generate_async() runs off the caller's thread, so neither
the session nor its sync channel ever waits on it.

Usage:
    generator = DraftGenerator("http://localhost:3000/api/generate")
    generator.generate_async(text, on_draft)
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date
from typing import Any, Callable, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..interfaces.program import DEFAULT_START_TIME, Program, new_id

logger = logging.getLogger(__name__)

DEFAULT_SPEAKER = "TBA"
DEFAULT_DURATION = 30


def program_from_draft(data: Dict[str, Any], today: Optional[str] = None) -> Program:
    """
    Build a Program from a generated draft.

    Raises:
        ValueError: if the draft has no usable title or slot list
    """
    if not isinstance(data, dict):
        raise ValueError("draft must be an object")
    slots = data.get("slots")
    if not isinstance(slots, list):
        raise ValueError("draft has no slot list")

    return Program.from_dict({
        "id": new_id(),
        "title": data.get("title") or "",
        "subtitle": data.get("subtitle") or "",
        "date": data.get("date") or today or date.today().isoformat(),
        "startTime": data.get("startTime") or DEFAULT_START_TIME,
        "endTime": data.get("endTime") or None,
        "slots": [
            {
                "id": new_id(),
                "title": s.get("title") or "",
                "speaker": s.get("speaker") or DEFAULT_SPEAKER,
                "durationMinutes": DEFAULT_DURATION if s.get("durationMinutes") is None else s["durationMinutes"],
                "type": s.get("type") or "Talk",
                "details": s.get("details") or "",
            }
            for s in slots if isinstance(s, dict)
        ],
    })


class DraftGenerator:
    """HTTP client for the draft-generation endpoint."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            endpoint: URL accepting POST {"rawText": ...}
            timeout: Request timeout in seconds
            session: requests session (default: one with retries on 5xx)
        """
        self.endpoint = endpoint.strip()
        self.timeout = timeout
        self.session = session or self._create_session()
        self._executor: Optional[ThreadPoolExecutor] = None

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=2,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"Content-Type": "application/json"})
        return session

    def generate(self, raw_text: str) -> Optional[Program]:
        """
        Generate a draft program.

        Returns:
            The new Program, or None if generation failed
        """
        if not raw_text or not raw_text.strip():
            logger.warning("Draft generation skipped: no text")
            return None
        try:
            response = self.session.post(
                self.endpoint,
                json={"rawText": raw_text},
                timeout=self.timeout,
            )
            response.raise_for_status()
            program = program_from_draft(response.json())
        except requests.RequestException as e:
            logger.error(f"Draft generation failed: {e}")
            return None
        except (ValueError, RecursionError) as e:
            logger.error(f"Draft generation returned an unusable draft: {e}")
            return None
        logger.info(f"Generated draft '{program.title}' with {program.slot_count} slots")
        return program

    def generate_async(
        self,
        raw_text: str,
        callback: Callable[[Optional[Program]], None],
    ) -> Future:
        """Run generate() on a worker thread and hand the result to callback."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="DraftGen")

        def run():
            program = self.generate(raw_text)
            try:
                callback(program)
            except Exception as e:
                logger.exception(f"Draft callback failed: {e}")
            return program

        return self._executor.submit(run)

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        self.session.close()
