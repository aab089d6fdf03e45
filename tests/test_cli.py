"""Tests for the command line interface."""

import json
import os
from unittest.mock import patch

import httpx
import pytest

from cdisc_library_client import CdiscLibrary
from cdisc_library_client.cli import build_library, main


@pytest.fixture
def fake_library(library_api):
    """Patch the CLI so that every command talks to the fake API."""

    def factory(args):
        return CdiscLibrary(api_key="test-key", transport=httpx.MockTransport(library_api.handler))

    with patch("cdisc_library_client.cli.build_library", side_effect=factory):
        yield library_api


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage: cdisc-library" in capsys.readouterr().out


def test_check(fake_library, capsys):
    assert main(["check"]) == 0
    out = capsys.readouterr().out
    assert "✓ Connected to the CDISC Library" in out
    assert '"statusCode": 200' in out


def test_check_failure(fake_library, capsys):
    fake_library.overrides["/mdr/lastupdated"] = 401
    assert main(["check"]) == 1
    assert "✗ Connection failed: Authentication failed" in capsys.readouterr().out


def test_products(fake_library, capsys):
    assert main(["products"]) == 0
    products = json.loads(capsys.readouterr().out)
    assert products[6]["id"] == "sdtmig-3-3"
    assert len(products) == 8


def test_item_groups_long(fake_library, capsys):
    assert main(["item-groups", "adamig1.1", "--type", "long"]) == 0
    assert json.loads(capsys.readouterr().out) == {
        "ADSL": "Subject-Level Analysis Dataset",
        "BDS": "Basic Data Structure",
    }


def test_item_group_csv(fake_library, capsys):
    assert main(["item-group", "DM", "sdtmig33", "--format", "csv"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith('"itemGroup"')
    assert len(lines) == 4


def test_item_group_not_found(fake_library, capsys):
    assert main(["item-group", "XX", "sdtmig33"]) == 1
    assert "✗ Item group XX not found in sdtmig33" in capsys.readouterr().out


def test_find(fake_library, capsys):
    assert main(["find", "TR01PG12", "adamig1.1"]) == 0
    assert "ADSL.TRxxPGy" in capsys.readouterr().out


def test_find_unknown_product(fake_library, capsys):
    assert main(["find", "STUDYID", "sendig"]) == 1
    assert "✗ Unknown product: sendig" in capsys.readouterr().out


def test_codelist(fake_library, capsys):
    assert main(["codelist", "C66731", "sdtmct-2019-12-20", "--format", "csv"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == '"conceptId","submissionValue","definition","preferredTerm","synonyms"'
    assert len(lines) == 4


def test_search(fake_library, capsys):
    assert main(["search", "AETERM", "--scope", "product=SDTMIG v3.3"]) == 0
    out = capsys.readouterr().out
    assert "Total hits: 3" in out
    assert "[Item] sdtmig-3-3" in out
    assert fake_library.requests[-1].url.params["product"] == "SDTMIG v3.3"


def test_search_invalid_scope(fake_library, capsys):
    assert main(["search", "AETERM", "--scope", "product"]) == 1
    assert "Invalid scope" in capsys.readouterr().out


def test_traffic_goes_to_stderr(fake_library, capsys):
    assert main(["--traffic", "check"]) == 0
    assert "Traffic: " in capsys.readouterr().err


@patch.dict(os.environ, {"CDISC_LIBRARY_API_KEY": "from-env"}, clear=True)
def test_build_library_overrides_environment():
    args = type("Args", (), {"api_key": None, "base_url": "https://example.org/api"})()
    library = build_library(args)
    assert library.connection.api_key == "from-env"
    assert library.connection.base_url == "https://example.org/api"
