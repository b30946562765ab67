import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_fixed

from leap_api.core.config import Settings, get_settings
from leap_api.errors import VerificationFailed, VerificationUnavailable

logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


class HCaptchaVerifier:
    """
    Verifies hCaptcha response tokens against the siteverify endpoint.

    Network failures are retried a fixed number of times; a rejected token is
    final and must be re-solved by the user.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        verify_url: str = "https://hcaptcha.com/siteverify",
        timeout: float = 10.0,
        attempts: int = 3,
        wait_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout
        self.attempts = attempts
        self.wait_seconds = wait_seconds
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "HCaptchaVerifier":
        return cls(
            secret_key=settings.hcaptcha_secret_key,
            verify_url=settings.hcaptcha_verify_url,
            timeout=settings.http_timeout_seconds,
            attempts=settings.http_retry_attempts,
            wait_seconds=settings.http_retry_wait_seconds,
        )

    async def _post(self, form: Dict[str, str]) -> Dict[str, Any]:
        @retry(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.wait_seconds),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        async def _send() -> Dict[str, Any]:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.verify_url, data=form)
                response.raise_for_status()
                return response.json()

        return await _send()

    async def verify(self, token: str, remote_ip: Optional[str] = None) -> None:
        """
        Raises:
            VerificationFailed: the provider rejected the token.
            VerificationUnavailable: no secret is configured, or the provider
                could not be reached after all attempts.
        """
        if not self.secret_key:
            logger.error("HCAPTCHA secret key not configured; cannot verify captcha tokens.")
            raise VerificationUnavailable("Captcha verification is not configured.")

        form = {"secret": self.secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            result = await self._post(form)
        except (httpx.TransportError, httpx.HTTPStatusError) as e:
            logger.error(f"Captcha provider unreachable after {self.attempts} attempts: {e}")
            raise VerificationUnavailable() from e
        except ValueError as e:
            logger.error(f"Captcha provider returned a non-JSON body: {e}")
            raise VerificationUnavailable() from e

        if not result.get("success"):
            error_codes = list(result.get("error-codes") or [])
            logger.info(f"Captcha token rejected: {error_codes}")
            raise VerificationFailed(error_codes=error_codes)
        logger.debug("Captcha token verified.")


def get_verifier() -> HCaptchaVerifier:
    """FastAPI dependency."""
    return HCaptchaVerifier.from_settings(get_settings())
