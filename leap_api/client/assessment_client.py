import hashlib
import logging
import uuid
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from leap_api.assessment.scoring import calculate_all_scores
from leap_api.drafts.store import LocalDraftStore
from leap_api.errors import (
    AlreadySubmitted,
    InvalidSubmissionError,
    RateLimited,
    ResponseNotFound,
    TransientStoreError,
    Unauthorized,
    VerificationFailed,
    VerificationUnavailable,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def idempotency_key_for(email: str, session_token: str) -> str:
    """Stable key for one logical submission: same email and quiz session, same key."""
    return hashlib.sha256(f"{email.strip().lower()}:{session_token}".encode("utf-8")).hexdigest()


def _error_detail(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text}
    detail = body.get("detail") if isinstance(body, dict) else None
    return detail if isinstance(detail, dict) else {"message": str(detail or body)}


def _raise_for_error(response: httpx.Response) -> None:
    """Maps an error response onto the service's exception taxonomy."""
    if response.is_success:
        return
    detail = _error_detail(response)
    message = detail.get("message") or response.reason_phrase
    code = detail.get("code") or f"HTTP_{response.status_code}"
    status = response.status_code

    if status == 429:
        raise RateLimited(retry_after=int(response.headers.get("retry-after", "60")), message=message)
    if status == 404:
        raise ResponseNotFound(message)
    if status == 401:
        raise Unauthorized(message)
    if status == 400 and code in ("CAPTCHA_FAILED", "CAPTCHA_REQUIRED"):
        raise VerificationFailed(message, code=code, error_codes=(detail.get("fields") or {}).get("error-codes", []))
    if status in (400, 422):
        raise InvalidSubmissionError(message, code=code, field_errors=detail.get("fields") or {})
    if status == 503 and code == "CAPTCHA_UNAVAILABLE":
        raise VerificationUnavailable(message)
    # Everything else (5xx) is worth another attempt
    raise TransientStoreError(message, code=code)


class AssessmentClient:
    """
    Talks to the assessment API on behalf of one browser/device.

    Submissions are scored locally, short-circuited when the draft store
    already holds a receipt, and retried a bounded number of times on
    transient failures. Retries reuse the same idempotency key, so a retry
    after a lost response cannot create a second record.
    """

    def __init__(
        self,
        base_url: str,
        drafts: Optional[LocalDraftStore] = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_wait_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.drafts = drafts or LocalDraftStore()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def _post(self, path: str, payload: Dict[str, Any], access_token: Optional[str] = None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        async with self._client() as client:
            try:
                return await client.post(f"{API_PREFIX}{path}", json=payload, headers=headers)
            except httpx.TimeoutException as e:
                raise TransientStoreError("Request timed out. Please try again.", code="REQUEST_TIMEOUT") from e
            except httpx.TransportError as e:
                raise TransientStoreError(f"Could not reach the assessment service: {e}", code="NETWORK_ERROR") from e

    async def _get(self, path: str, access_token: str) -> httpx.Response:
        async with self._client() as client:
            try:
                return await client.get(f"{API_PREFIX}{path}", headers={"Authorization": f"Bearer {access_token}"})
            except httpx.TransportError as e:
                raise TransientStoreError(f"Could not reach the assessment service: {e}", code="NETWORK_ERROR") from e

    async def submit(
        self,
        contact: Mapping[str, Any],
        assessment_type: str,
        answers: Iterable[Mapping[str, Any]],
        session_token: str,
        captcha_token: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Scores `answers` and submits them.

        Args:
            contact: full_name, email and optional company/role/phone/source.
            assessment_type: "individual" or "team".
            answers: question_id, category, points and optional question_text
                and response_label per answered question.
            session_token: Identifies this quiz session; with the email it
                forms the idempotency key.

        Returns:
            The created (or previously created) assessment response.

        Raises:
            AlreadySubmitted: a receipt is already stored; no request was made.
            RateLimited: the server asked us to back off; not retried here.
        """
        if self.drafts.has_submitted():
            receipt = self.drafts.get_receipt()
            logger.info(f"Submission skipped: receipt for {receipt.get('responseId')} already stored.")
            raise AlreadySubmitted(receipt)

        answers = list(answers)
        scores = calculate_all_scores(answers)
        category = scores.category_scores
        payload = {
            "contactData": {"source": "assessment", **dict(contact)},
            "assessmentType": assessment_type,
            "scores": scores.leap_scores.as_dict(),
            "habitScore": category.habit,
            "abilityScore": category.ability,
            "talentScore": category.talent,
            "skillScore": category.skill,
            "answers": [self._trace_item(answer) for answer in answers],
            "idempotencyKey": idempotency_key_for(contact["email"], session_token),
        }
        if captcha_token:
            payload["captchaToken"] = captcha_token

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_wait_seconds),
            retry=retry_if_exception_type(TransientStoreError),
            reraise=True,
        ):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                if attempt_number > 1:
                    logger.warning(f"Retrying assessment submission (attempt {attempt_number}/{self.max_attempts})")
                response = await self._post("/assessments", payload, access_token=access_token)
                _raise_for_error(response)

        record = response.json()
        self.drafts.record_submission(contact["email"], record["id"])
        self.drafts.save_contact(**{key: contact.get(key) for key in ("full_name", "email", "company", "role", "phone")})
        return record

    @staticmethod
    def _trace_item(answer: Mapping[str, Any]) -> Dict[str, Any]:
        item = {
            "question_id": str(answer["question_id"]),
            "category": answer.get("category"),
            "score": int(answer.get("points", answer.get("score", 0))),
            "question_text": answer.get("question_text"),
            "response_label": answer.get("response_label"),
        }
        return {key: value for key, value in item.items() if value is not None}

    async def fetch_result(self, response_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        response = await self._post("/assessments/results", {"responseId": str(response_id)}, access_token=access_token)
        _raise_for_error(response)
        return response.json()

    async def check_user_exists(self, email: str) -> Tuple[bool, Optional[uuid.UUID]]:
        response = await self._post("/users/exists", {"email": email})
        _raise_for_error(response)
        body = response.json()
        user_id = body.get("userId")
        return bool(body.get("exists")), uuid.UUID(user_id) if user_id else None

    async def sync_from_profile(self, access_token: str) -> Dict[str, Any]:
        """
        Pulls the signed-in user's profile and latest submission into the
        draft store. The receipt always follows the server; contact fields
        follow `LocalDraftStore.merge_profile`.
        """
        profile_response = await self._get("/users/me", access_token)
        _raise_for_error(profile_response)
        profile = profile_response.json()
        contact = self.drafts.merge_profile(profile)

        latest_response = await self._get("/assessments/latest", access_token)
        if latest_response.status_code == 404:
            self.drafts.clear_receipt()
        else:
            _raise_for_error(latest_response)
            latest = latest_response.json()
            self.drafts.replace_receipt(profile.get("email", ""), latest["id"], latest["created_at"])
        return contact
