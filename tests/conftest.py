"""
Shared fixtures: a local HTTP site to crawl.
"""

import asyncio
import collections
import socket

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer


def build_site() -> web.Application:
    app = web.Application()
    app['hits'] = collections.Counter()

    @web.middleware
    async def count_hits(request, handler):
        request.app['hits'][request.path] += 1
        return await handler(request)

    app.middlewares.append(count_hits)

    async def page_a(request):
        return web.Response(status=301, headers={'Location': '/b'})

    async def page_b(request):
        return web.Response(text='hello')

    async def chain(request):
        step = int(request.match_info['step'])
        if step >= 3:
            return web.Response(text=f'end of chain at {step}')
        return web.Response(status=302, headers={'Location': f'/chain/{step + 1}'})

    async def loop(request):
        return web.Response(status=302, headers={'Location': '/loop'})

    async def away(request):
        return web.Response(status=302, headers={'Location': 'http://elsewhere.invalid/x'})

    async def missing(request):
        return web.Response(status=404, text='not here')

    async def no_location(request):
        return web.Response(status=301)

    async def set_cookie(request):
        response = web.Response(text='cookie set')
        response.set_cookie('a', '1')
        return response

    async def echo(request):
        return web.json_response(dict(request.headers))

    async def deep_start(request):
        return web.Response(status=302, headers={'Location': '/other/dir/page'})

    async def other_dir_page(request):
        return web.Response(status=302, headers={'Location': 'leaf'})

    async def deep_leaf(request):
        return web.Response(text='leaf')

    async def slow(request):
        await asyncio.sleep(0.5)
        return web.Response(text='too late')

    app.router.add_get('/a', page_a)
    app.router.add_get('/b', page_b)
    app.router.add_get('/chain/{step}', chain)
    app.router.add_get('/loop', loop)
    app.router.add_get('/away', away)
    app.router.add_get('/missing', missing)
    app.router.add_get('/no-location', no_location)
    app.router.add_get('/set-cookie', set_cookie)
    app.router.add_get('/echo', echo)
    app.router.add_get('/slow', slow)
    app.router.add_get('/deep/start', deep_start)
    app.router.add_get('/other/dir/page', other_dir_page)
    app.router.add_get('/deep/leaf', deep_leaf)
    return app


class Site:
    def __init__(self, server: TestServer):
        self.server = server

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    @property
    def hits(self) -> collections.Counter:
        return self.server.app['hits']


@pytest_asyncio.fixture
async def site():
    server = TestServer(build_site())
    await server.start_server()
    try:
        yield Site(server)
    finally:
        await server.close()


@pytest.fixture
def closed_port() -> int:
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
