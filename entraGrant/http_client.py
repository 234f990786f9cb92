"""
HTTP plumbing shared by the Microsoft Graph and Azure Resource Manager clients
"""

# Standard library imports
import logging
import time
import urllib3
from typing import Callable, Dict

# Third-party imports
import requests

# Local imports
from .errors import ApiError, AuthError, ConnectivityError

logger = logging.getLogger(__name__)


class BaseAPIClient:
    """Authenticated requests session with proxy support, read retries and error mapping"""

    domain = ""

    def __init__(self, token: str, proxy: str = None, timeout: float = 30,
                 max_attempts: int = 3, retry_delay: float = 1.0):
        """Initialize the client with an access token.

        Parameters:
            token (str): Bearer token for ``domain``
            proxy (str): Proxy address in format 'host:port' (e.g., '127.0.0.1:8080').
                        If provided, routes all requests through proxy without cert verification.
            timeout (float): Per-request timeout in seconds
            max_attempts (int): Attempts for read requests before giving up
            retry_delay (float): Delay in seconds between read attempts
        """
        self.token = token
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

        # Proxy configuration for debugging (e.g., Burp Suite)
        if proxy:
            self.proxies = {
                'http': f'http://{proxy}',
                'https': f'http://{proxy}'
            }
            self.verify_ssl = False
            # Suppress SSL warnings when using proxy
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        else:
            self.proxies = None
            self.verify_ssl = True

        # HTTP Session for connection pooling (reuse TCP connections)
        self.session = requests.Session()
        self.session.proxies = self.proxies
        self.session.verify = self.verify_ssl
        self.session.headers.update({
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json"
        })

    @staticmethod
    def _retry_on_failure(func: Callable, max_attempts: int = 3, delay: float = 1.0):
        """Execute a function with retry logic.

        Wraps a function call with retry logic that:
        - Retries up to max_attempts times
        - Only retries throttling (429), server errors (5xx), timeouts and connection errors
        - Adds delay between retry attempts
        - Re-raises the last exception if all retries fail

        Parameters:
            func (Callable): The function to execute (should return requests.Response)
            max_attempts (int): Maximum number of attempts (default: 3)
            delay (float): Delay in seconds between retries (default: 1.0)

        Returns:
            requests.Response: The successful response

        Raises:
            requests.exceptions.RequestException: The last exception encountered
        """
        for attempt in range(max_attempts):
            try:
                response = func()
                response.raise_for_status()
                return response
            except requests.exceptions.HTTPError as e:
                status = e.response.status_code
                if status != 429 and status < 500:
                    # Client errors will not go away by retrying
                    raise
                if attempt < max_attempts - 1:
                    logger.warning("HTTP error (attempt %d/%d): %s, retrying in %ss...",
                                   attempt + 1, max_attempts, status, delay)
                    time.sleep(delay)
                    continue
                raise
            except requests.exceptions.RequestException as e:
                if attempt < max_attempts - 1:
                    logger.warning("Request failed (attempt %d/%d): %s, retrying in %ss...",
                                   attempt + 1, max_attempts, type(e).__name__, delay)
                    time.sleep(delay)
                    continue
                raise

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        """Extract the error message from a Graph or ARM error response."""
        try:
            error = response.json().get('error', {})
            if isinstance(error, dict) and error.get('message'):
                return error['message']
        except ValueError:
            pass
        return (response.text or response.reason or '')[:200]

    def _send(self, method: str, url: str, body: Dict = None) -> requests.Response:
        """Send a request and translate transport failures into entra-grant errors.

        Only GET requests are retried; POST, PUT and DELETE are sent exactly once.
        """
        logger.debug("%s %s", method, url)

        def send():
            return self.session.request(method, url, json=body, timeout=self.timeout)

        try:
            if method == "GET":
                return self._retry_on_failure(send, self.max_attempts, self.retry_delay)
            response = send()
            response.raise_for_status()
            return response
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            message = self._error_message(e.response)
            if status == 401:
                raise AuthError(f"Invalid or expired access token for {self.domain}: {message}") from e
            raise ApiError(message, status) from e
        except requests.exceptions.Timeout as e:
            raise ApiError("Timeout") from e
        except requests.exceptions.ConnectionError as e:
            raise ConnectivityError(f"Could not reach {self.domain}: {e}") from e
