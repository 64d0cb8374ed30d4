"""Shared fixtures: captured firmware pages and a fake ONT web UI served by aiohttp."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from prometheus_client import CollectorRegistry

from huawei_ont.metrics import PrometheusSink

from tests.pages import LOGIN_OK_BODY, SESSION_COOKIE, load_page


@pytest.fixture
def optic_page():
    return load_page("opticinfo.asp")


@pytest.fixture
def sink():
    # Private registry per test so nothing leaks between them
    return PrometheusSink(registry=CollectorRegistry())


class FakeOnt:
    """Just enough of the HG8145V5 web UI to log in, serve pages and log out."""

    def __init__(self):
        self.token = "\ufeff8e4f2a1c"
        self.login_status = 200
        self.login_body = LOGIN_OK_BODY
        self.token_status = 200
        # path -> (status, body)
        self.pages = {
            "/html/amp/opticinfo/opticinfo.asp": (200, load_page("opticinfo.asp")),
            "/html/ssmp/deviceinfo/deviceinfo.asp": (200, load_page("deviceinfo.asp")),
            "/html/bbsp/waninfo/waninfo.asp": (200, load_page("waninfo.asp")),
            "/html/bbsp/common/GetLanUserDevInfo.asp": (200, load_page("userdevinfo.asp")),
        }
        # path -> seconds to stall before answering
        self.delays = {}
        # (method, path, session cookie or None) for every request seen
        self.requests = []
        self.login_forms = []
        self.base_url = None

    @property
    def logouts(self) -> int:
        return sum(1 for _, path, _ in self.requests if path == "/logout.cgi")

    def paths_requested(self) -> list[str]:
        return [path for _, path, _ in self.requests]

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append((request.method, request.path, request.cookies.get("Cookie")))

        if (delay := self.delays.get(request.path)) is not None:
            await asyncio.sleep(delay)

        if request.path == "/":
            resp = web.Response(text="<html><title>Login</title>login.asp</html>", content_type="text/html")
            resp.set_cookie("Cookie", "body:Language:english", path="/")
            return resp

        if request.path == "/asp/GetRandCount.asp":
            return web.Response(status=self.token_status, text=self.token)

        if request.path == "/login.cgi":
            self.login_forms.append(dict(await request.post()))
            resp = web.Response(status=self.login_status, text=self.login_body, content_type="text/html")
            if self.login_status == 200 and self.login_body == LOGIN_OK_BODY:
                resp.set_cookie("Cookie", SESSION_COOKIE, path="/")
            return resp

        if request.path == "/logout.cgi":
            return web.Response(text="<html>logout</html>", content_type="text/html")

        if request.path in self.pages:
            status, body = self.pages[request.path]
            return web.Response(status=status, text=body, content_type="text/html")

        return web.Response(status=404, text="<html><title>404 Not Found</title></html>", content_type="text/html")

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app


@pytest_asyncio.fixture
async def fake_ont():
    ont = FakeOnt()
    server = TestServer(ont.make_app())
    await server.start_server()
    ont.base_url = f"http://{server.host}:{server.port}"
    yield ont
    await server.close()
