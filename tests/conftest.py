"""Shared fixtures: a recorded CDISC Library served through ``httpx.MockTransport``."""

import json
from pathlib import Path

import httpx
import pytest

from cdisc_library_client import CdiscLibrary
from cdisc_library_client.transport import Connection

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "library"

API_PREFIX = "/api"

ROUTES = {
    "/mdr/products": "products.json",
    "/mdr/lastupdated": "lastupdated.json",
    "/mdr/adam/adamig-1-1": "adamig-1-1.json",
    "/mdr/adam/adamig-1-1/datastructures": "adamig-1-1-datastructures.json",
    "/mdr/adam/adamig-1-1/datastructures/ADSL": "adamig-1-1-datastructures-ADSL.json",
    "/mdr/sdtmig/3-3": "sdtmig-3-3.json",
    "/mdr/sdtmig/3-3/datasets": "sdtmig-3-3-datasets.json",
    "/mdr/sdtmig/3-3/datasets/DM": "sdtmig-3-3-datasets-DM.json",
    "/mdr/sdtmig/3-3/datasets/AE": "sdtmig-3-3-datasets-AE.json",
    "/mdr/cdashig/2-0": "cdashig-2-0.json",
    "/mdr/ct/packages/sdtmct-2019-12-20": "sdtmct-2019-12-20.json",
    "/mdr/ct/packages/sdtmct-2019-12-20/codelists": "sdtmct-2019-12-20-codelists.json",
    "/mdr/ct/packages/sdtmct-2019-12-20/codelists/C66731": "sdtmct-2019-12-20-C66731.json",
    "/mdr/root/ct/sdtmct/codelists/C66731": "root-sdtmct-C66731.json",
    "/mdr/search/scopes": "search-scopes.json",
    "/mdr/search/scopes/product": "search-scopes-product.json",
}


def load_fixture(name):
    """Decoded content of a fixture file."""
    return json.loads((FIXTURES_DIR / name).read_text())


class LibraryApi:
    """In-memory stand-in for the CDISC Library.

    Every request is recorded in ``requests``. ``overrides`` maps an API path
    to an int (status code), a dict (JSON body), a str (raw body) or an
    exception instance raised by the transport.
    """

    def __init__(self):
        self.requests = []
        self.overrides = {}

    @property
    def paths(self):
        return [self._path(request) for request in self.requests]

    def count(self, path):
        return self.paths.count(path)

    @staticmethod
    def _path(request):
        path = request.url.path
        if path.startswith(API_PREFIX):
            path = path[len(API_PREFIX):]
        return path

    def handler(self, request):
        self.requests.append(request)
        path = self._path(request)

        if path in self.overrides:
            override = self.overrides[path]
            if isinstance(override, Exception):
                raise override
            if isinstance(override, int):
                return httpx.Response(override, json={"message": "override"})
            if isinstance(override, str):
                return httpx.Response(
                    200, text=override, headers={"content-type": "application/json"}
                )
            return httpx.Response(200, json=override)

        if path == "/mdr/search":
            page = "search-page-2.json" if int(request.url.params.get("start", "0")) else "search-page-1.json"
            return httpx.Response(200, json=load_fixture(page))

        name = ROUTES.get(path)
        if name is None:
            return httpx.Response(404, json={"message": f"No resource at {path}"})
        return httpx.Response(200, json=load_fixture(name))


@pytest.fixture
def library_api():
    """Recording fake of the CDISC Library API."""
    return LibraryApi()


@pytest.fixture
def library(library_api):
    """Client wired to the fake API."""
    return CdiscLibrary(api_key="test-key", transport=httpx.MockTransport(library_api.handler))


@pytest.fixture
def connection(library_api):
    """Bare connection wired to the fake API."""
    return Connection(api_key="test-key", transport=httpx.MockTransport(library_api.handler))


@pytest.fixture
def payload():
    """Loader for recorded API documents."""
    return load_fixture
