"""
External Link Client with Robust Retry Logic

Checks that external URLs resolve, including:
- HEAD first, streamed GET fallback for servers that refuse HEAD
- Retry logic with exponential backoff
- Rate limit handling (429 errors with Retry-After)
- Server error handling (5xx errors)
- Network error handling

HTTP failures are returned as broken results, never raised.
"""
import time
import logging
from typing import Dict
from urllib.parse import urlsplit

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_sleep_log,
    after_log
)

from .config import (
    GITHUB_TOKEN,
    GITHUB_HOSTS,
    USER_AGENT,
    HTTP_TIMEOUT,
    MAX_RETRIES,
    RETRY_INITIAL_WAIT,
    RETRY_MAX_WAIT,
    RETRY_MULTIPLIER,
    CONNECTIVITY_PROBE_URL
)
from .models import CheckResult, OUTCOME_OK, OUTCOME_BROKEN

# Set up logger for this module
logger = logging.getLogger(__name__)

# Servers answering HEAD with these get a second chance with GET
HEAD_REJECTED_STATUSES = {403, 405, 501}


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if an exception should trigger a retry.

    Retryable errors:
    - 5xx server errors (temporary server issues)
    - 429 rate limit errors
    - Network errors (timeouts, connection errors)

    Non-retryable errors:
    - 4xx client errors (except 429)
    - Malformed URLs

    Args:
        exception: The exception to check

    Returns:
        True if the error should be retried
    """
    if isinstance(exception, requests.exceptions.HTTPError):
        status_code = exception.response.status_code
        # Retry on server errors (5xx) or rate limiting (429)
        return status_code >= 500 or status_code == 429
    if isinstance(exception, (requests.exceptions.MissingSchema,
                              requests.exceptions.InvalidSchema,
                              requests.exceptions.InvalidURL)):
        return False
    return isinstance(exception, (requests.exceptions.ConnectionError,
                                  requests.exceptions.Timeout))


def get_retry_after_seconds(response: requests.Response) -> int:
    """
    Extract retry-after value from response headers.

    The Retry-After header can be:
    - An integer (seconds to wait)
    - An HTTP-date (not implemented here)

    Args:
        response: HTTP response object

    Returns:
        Number of seconds to wait (0 if header not present or invalid),
        capped at RETRY_MAX_WAIT
    """
    retry_after = response.headers.get('Retry-After')
    if retry_after:
        try:
            return min(int(retry_after), RETRY_MAX_WAIT)
        except ValueError:
            # Could be HTTP-date format, not implemented
            logger.warning(f"Could not parse Retry-After header: {retry_after}")
    return 0


def wait_strategy(retry_state):
    """
    Custom wait strategy that honors Retry-After headers.

    If a 429 response includes Retry-After, wait that long.
    Otherwise, use exponential backoff.
    """
    exception = retry_state.outcome.exception()

    # Check if this is a 429 error with Retry-After header
    if isinstance(exception, requests.exceptions.HTTPError):
        if exception.response.status_code == 429:
            wait_seconds = get_retry_after_seconds(exception.response)
            if wait_seconds > 0:
                logger.info(f"Rate limited. Honoring Retry-After: {wait_seconds}s")
                return wait_seconds

    # Fallback to exponential backoff
    return wait_exponential(
        multiplier=RETRY_MULTIPLIER,
        min=RETRY_INITIAL_WAIT,
        max=RETRY_MAX_WAIT
    )(retry_state)


# Create the retry decorator
link_retry_decorator = retry(
    stop=stop_after_attempt(MAX_RETRIES),
    wait=wait_strategy,
    retry=retry_if_exception(is_retryable_error),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    after=after_log(logger, logging.DEBUG),
    reraise=True
)


def build_headers(url: str) -> Dict[str, str]:
    """
    Request headers for a URL.

    The GitHub token is only ever sent to GitHub hosts.
    """
    headers = {"User-Agent": USER_AGENT}
    host = (urlsplit(url).hostname or "").lower()
    if GITHUB_TOKEN and host in GITHUB_HOSTS:
        headers["Authorization"] = f"Bearer {GITHUB_TOKEN}"
    return headers


@link_retry_decorator
def request_url(url: str) -> requests.Response:
    """
    Request a URL, retrying transient failures.

    This function is decorated with retry logic and will automatically:
    - Retry up to MAX_RETRIES times on transient errors
    - Honor Retry-After headers on 429 errors
    - Use exponential backoff for other errors

    Args:
        url: Absolute http(s) URL

    Returns:
        Final response (status < 400)

    Raises:
        requests.exceptions.HTTPError: On non-retryable client errors,
            or a retryable one that persisted through every attempt
        requests.exceptions.RequestException: On network failures
    """
    headers = build_headers(url)

    logger.debug(f"HEAD {url}")
    response = requests.head(url, headers=headers, timeout=HTTP_TIMEOUT, allow_redirects=True)

    if response.status_code in HEAD_REJECTED_STATUSES:
        logger.debug(f"HEAD rejected with {response.status_code}, retrying as GET: {url}")
        response = requests.get(url, headers=headers, timeout=HTTP_TIMEOUT,
                                allow_redirects=True, stream=True)
        # Only the status line matters, don't download the body
        response.close()

    try:
        response.raise_for_status()
    except requests.exceptions.HTTPError as e:
        if is_retryable_error(e):
            logger.warning(f"Retryable error for {url}: {response.status_code}")
        raise

    return response


def check_url(url: str) -> CheckResult:
    """
    Check that an external URL resolves.

    Args:
        url: Absolute http(s) URL

    Returns:
        CheckResult with status code, final URL after redirects,
        elapsed time and error text for failures
    """
    start = time.monotonic()

    def elapsed_ms() -> float:
        return round((time.monotonic() - start) * 1000, 1)

    try:
        response = request_url(url)
        final_url = response.url or url
        if final_url != url:
            logger.debug(f"{url} redirected to {final_url}")
        return CheckResult(
            target=url,
            ok=True,
            outcome=OUTCOME_OK,
            status_code=response.status_code,
            final_url=final_url,
            elapsed_ms=elapsed_ms()
        )

    except requests.exceptions.HTTPError as e:
        status_code = e.response.status_code if e.response is not None else None
        logger.error(f"Broken link {url}: HTTP {status_code}")
        return CheckResult(
            target=url,
            ok=False,
            outcome=OUTCOME_BROKEN,
            status_code=status_code,
            error=f"HTTP {status_code}",
            elapsed_ms=elapsed_ms()
        )

    except requests.exceptions.RequestException as e:
        logger.error(f"Unreachable link {url}: {type(e).__name__}: {e}")
        return CheckResult(
            target=url,
            ok=False,
            outcome=OUTCOME_BROKEN,
            error=f"{type(e).__name__}: {e}",
            elapsed_ms=elapsed_ms()
        )


def test_connectivity(probe_url: str = CONNECTIVITY_PROBE_URL) -> bool:
    """
    Test if outbound HTTP is working.

    Makes a single request (no retries) to verify:
    - Network is reachable
    - DNS resolves

    Returns:
        True if connection successful, False otherwise
    """
    try:
        response = requests.head(probe_url, headers=build_headers(probe_url),
                                 timeout=HTTP_TIMEOUT, allow_redirects=True)
        # Any answer at all means we are online
        logger.info(f"[OK] Connectivity check successful ({response.status_code})")
        return True

    except requests.exceptions.RequestException as e:
        logger.error(f"[FAIL] Connectivity check failed: {e}")
        return False
