"""
Implementation of the login / scrape / logout cycle against the ONT's web UI.

Every scrape gets its own ClientSession (and so its own cookie jar). The ONT only allows a handful of
    concurrent admin sessions and stale cookies from a previous cycle make it do strange things, so nothing
    is ever carried over between cycles. Logout is always attempted, once, however the scrape went.
"""

import asyncio
import base64
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from aiohttp import (ClientError, ClientSession, ClientTimeout, CookieJar,
                     TCPConnector)
from err.exceptions import (AuthenticationFailure, ExtractionFailure,
                            OntScrapeError, PageNotFound, TransportFailure)
from util.const import (BOM, DEFAULT_REQUEST_TIMEOUT_SECONDS,
                        REQUEST_HEADERS)

from huawei_ont import parse
from huawei_ont.metrics import PrometheusSink
from huawei_ont.record import CategoryResult, CategoryStatus, TelemetryRecord

log = structlog.get_logger(__name__)

ROOT_ENDPOINT = "/"
TOKEN_ENDPOINT = "/asp/GetRandCount.asp"
LOGIN_ENDPOINT = "/login.cgi"
LOGOUT_ENDPOINT = "/logout.cgi?RequestFile=html/logout.html"

OPTIC_PATHS = ("/html/amp/opticinfo/opticinfo.asp",)

# Firmware builds disagree on where these live; tried in order, first acceptable page wins.
DEVICE_INFO_PATHS = (
    "/html/ssmp/deviceinfo/deviceinfo.asp",
    "/html/ssmp/deviceinfo/deviceinfocustom.asp",
    "/html/status/deviceinfo.asp",
)
WAN_PATHS = (
    "/html/bbsp/waninfo/waninfo.asp",
    "/html/bbsp/common/wan_list.asp",
    "/html/status/wan.asp",
)
LAN_PATHS = (
    "/html/bbsp/common/GetLanUserDevInfo.asp",
    "/html/bbsp/userdevinfo/userdevinfo.asp",
)

LOGIN_LANGUAGE = "english"


@dataclass(frozen=True)
class PageCategory:
    """A page we want, where it might be and what to do with it once found"""

    name: str
    paths: tuple[str, ...]
    parser: Callable[[str], dict]
    # Some firmware happily serves a *different* page at one of the candidate paths.
    # When set, a body without this string is rejected and the next path is tried.
    required_marker: str | None = None


OPTICAL = PageCategory("optical", OPTIC_PATHS, parse.parse_optical)

OPTIONAL_CATEGORIES = (
    PageCategory(
        "device_info",
        DEVICE_INFO_PATHS,
        parse.parse_device_info,
        required_marker=parse.DEVICE_CONSTRUCT,
    ),
    PageCategory("wan", WAN_PATHS, parse.parse_wan),
    PageCategory("lan", LAN_PATHS, parse.parse_lan_clients),
)


def encode_password(password: str) -> str:
    """login.cgi wants the password base64 encoded; the login page JS does the same"""
    return base64.b64encode(password.encode("utf-8")).decode("ascii")


def _is_success(status: int) -> bool:
    return 200 <= status < 300


class OntSession:
    """One authenticated session against the ONT, good for exactly one scrape.

    Unauthenticated -> (login) -> Authenticated -> (scrape work) -> (logout) -> LoggedOut
    """

    def __init__(self, cs: ClientSession, base_url: str, sink: PrometheusSink):
        self.cs = cs
        self.base_url = base_url.rstrip("/")
        self.sink = sink

    async def _request(self, target: str, method: str, url: str, **kwargs) -> tuple[int, str]:
        """Issue one request; returns (status, body).

        Raises:
            TransportFailure: connection error or timeout.
        """
        try:
            with self.sink.request_timer(target):
                async with self.cs.request(method=method, url=url, **kwargs) as resp:
                    self.sink.record_request(target, resp.status)
                    body = await resp.text(errors="replace")
                    return resp.status, body
        except (ClientError, asyncio.TimeoutError) as e:
            self.sink.record_request(target, "error")
            raise TransportFailure(f"{method} {url} failed: {e!r}") from e

    async def get_login_token(self) -> str:
        """Fetch the one-time anti-CSRF token that goes along with the credentials.

        Raises:
            AuthenticationFailure: on anything other than a non-empty token.
        """
        # Without these the ONT replies with an empty body
        headers = {
            "Referer": f"{self.base_url}/",
            "Origin": self.base_url,
            "X-Requested-With": "XMLHttpRequest",
        }
        try:
            status, body = await self._request("token", "POST", TOKEN_ENDPOINT, headers=headers)
        except TransportFailure as e:
            raise AuthenticationFailure(f"Failed to get login token: {e}") from e

        if not _is_success(status):
            raise AuthenticationFailure("Token request failed", status_code=status)

        # Some firmware prepends a UTF-8 BOM to the token
        token = body.lstrip(BOM).strip()
        if token == "":
            raise AuthenticationFailure("ONT returned an empty login token", status_code=status)
        log.debug("Got login token", token=token)
        return token

    async def login(self, username: str, password: str) -> None:
        """Runs the login handshake. On return, the cookie jar holds an authenticated session.

        Raises:
            AuthenticationFailure: token could not be had or credentials were rejected.
            TransportFailure: the credential POST itself didn't make it.
        """
        log.debug("Logging in", base_url=self.base_url)

        # Hitting / first sets the pre-login cookie; what comes back doesn't matter
        try:
            await self._request("root", "GET", ROOT_ENDPOINT)
        except TransportFailure as e:
            log.debug("Ignoring failed session seed request", error=e)

        token = await self.get_login_token()

        payload = {
            "UserName": username,
            "PassWord": encode_password(password),
            "Language": LOGIN_LANGUAGE,
            "x.X_HW_Token": token,
        }
        status, body = await self._request(
            "login",
            "POST",
            LOGIN_ENDPOINT,
            data=payload,
            headers={"Referer": f"{self.base_url}/"},
        )
        if not _is_success(status):
            raise AuthenticationFailure("Login request failed", status_code=status)

        # Success is a tiny page with a JS redirect; failure is the login form all over again
        if parse.is_login_failure(body):
            raise AuthenticationFailure(
                "Login failed: ONT returned the login page. Check ONT_USER / ONT_PASS.",
                status_code=status,
                payload=parse.page_title(body),
            )
        log.debug("Login successful", cookies=len(self.cs.cookie_jar))

    async def logout(self) -> None:
        """Best effort. Never raises; a failed logout must not stop the next cycle."""
        log.debug("Logging out")
        try:
            status, _ = await self._request("logout", "GET", LOGOUT_ENDPOINT)
        except OntScrapeError as e:
            log.warning("Logout failed", error=e)
            return
        if not _is_success(status):
            log.warning("Logout returned non-success status", status=status)

    async def fetch_with_fallback(
        self, target: str, paths: tuple[str, ...], required_marker: str | None = None
    ) -> str:
        """Walk the candidate paths in order and return the first acceptable body.

        Acceptable: 2xx, not blank, not the firmware's generic not-found page and, if given, containing
            required_marker.

        Raises:
            PageNotFound: every candidate was rejected.
            TransportFailure: the ONT stopped answering altogether; no point trying more paths.
        """
        for path in paths:
            status, body = await self._request(target, "GET", path)

            if not _is_success(status):
                log.debug("Rejecting candidate page", target=target, path=path, status=status)
                continue
            if body.strip() == "":
                log.debug("Rejecting empty candidate page", target=target, path=path)
                continue
            if parse.is_not_found_page(body):
                log.debug("Rejecting not-found page", target=target, path=path)
                continue
            if required_marker is not None and required_marker not in body:
                log.info(
                    "Candidate page is missing expected content",
                    target=target,
                    path=path,
                    marker=required_marker,
                    title=parse.page_title(body),
                )
                continue

            log.debug("Found page", target=target, path=path)
            return body

        raise PageNotFound(f"No acceptable {target} page", payload=list(paths))

    async def fetch_category(self, category: PageCategory) -> CategoryResult:
        """Fetch + parse one optional category. Never raises; failures come back as FAILED."""
        try:
            body = await self.fetch_with_fallback(
                category.name, category.paths, category.required_marker
            )
        except OntScrapeError as e:
            log.warning("Could not fetch optional page", category=category.name, error=e)
            return CategoryResult.failed(category.name, e)

        try:
            parsed = category.parser(body)
        # pylint: disable=broad-exception-caught
        except Exception as e:
            log.error("Optional page parser blew up", category=category.name, error=e)
            self.sink.record_parse(category.name, False)
            return CategoryResult.failed(category.name, e)

        result = CategoryResult.from_fields(category.name, parsed)
        self.sink.record_parse(category.name, result.status is CategoryStatus.OK)
        return result

    async def scrape_optical(self) -> dict[str, float]:
        """The one page we can't do without; everything here propagates."""
        body = await self.fetch_with_fallback(OPTICAL.name, OPTICAL.paths)
        try:
            optical = OPTICAL.parser(body)
        except ExtractionFailure:
            self.sink.record_parse(OPTICAL.name, False)
            raise
        self.sink.record_parse(OPTICAL.name, True)
        return optical

    async def scrape(self, username: str, password: str) -> TelemetryRecord:
        """login -> optical -> optional categories -> logout.

        Logout runs exactly once, whatever happened before it.

        Raises:
            OntScrapeError: login or the optical page failed. Optional categories never raise.
        """
        try:
            await self.login(username, password)
            optical = await self.scrape_optical()

            optional = {}
            for category in OPTIONAL_CATEGORIES:
                result = await self.fetch_category(category)
                if result.status is CategoryStatus.OK:
                    optional.update(result.fields)
                elif result.status is CategoryStatus.ABSENT:
                    log.info("Optional page had nothing we could use", category=category.name)
                else:
                    log.warning(
                        "Skipping optional category",
                        category=category.name,
                        error=result.error,
                    )

            return TelemetryRecord(**optical, **optional)
        finally:
            await self.logout()


async def do_ont_scrape(
    base_url: str,
    username: str,
    password: str,
    sink: PrometheusSink,
    timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    verify_tls: bool = False,
) -> TelemetryRecord:
    """Runs one complete scrape with a brand new session."""
    async with ClientSession(
        base_url=base_url.rstrip("/"),
        headers=REQUEST_HEADERS,
        timeout=ClientTimeout(total=timeout),
        # unsafe=True: tell aiohttp to allow cookies on IP addresses
        cookie_jar=CookieJar(unsafe=True),
        # ONTs that serve https do so with a self-signed cert
        connector=TCPConnector(ssl=verify_tls),
    ) as cs:
        session = OntSession(cs, base_url, sink)
        return await session.scrape(username, password)


async def scrape_cycle(
    base_url: str,
    username: str,
    password: str,
    sink: PrometheusSink,
    timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    verify_tls: bool = False,
) -> TelemetryRecord | None:
    """One tick of the driver: scrape, account for it and publish on success.

    A failed scrape publishes nothing so the previous record stays visible.
    """
    start = time.monotonic()
    try:
        record = await do_ont_scrape(
            base_url, username, password, sink, timeout=timeout, verify_tls=verify_tls
        )
    except OntScrapeError as e:
        sink.record_scrape(time.monotonic() - start, e)
        log.error("Scrape failed", error_type=type(e).__name__, error=str(e))
        return None

    duration = time.monotonic() - start
    sink.record_scrape(duration)
    sink.publish(record)
    log.info("Scrape successful", duration=round(duration, 3))
    return record
