import pytest

from server_data import AppEntry
from wire.errors import GSResult, GameStreamError, gs_error
from wire.xml_reader import xml_applist, xml_find, xml_search, xml_status

SERVERINFO = b"""<?xml version="1.0" encoding="utf-8"?>
<root status_code="200" status_message="OK">
    <hostname>DESKTOP-GAMES</hostname>
    <appversion>7.1.431.-1</appversion>
    <mac></mac>
    <PairStatus>0</PairStatus>
</root>"""


def test_status_ok():
    xml_status(SERVERINFO)


def test_status_error_sets_message():
    with pytest.raises(GameStreamError) as excinfo:
        xml_status(b'<root status_code="401" status_message="The client is not authorized."/>')

    assert excinfo.value.code == GSResult.ERROR
    assert gs_error() == "The client is not authorized."


def test_status_error_without_message():
    with pytest.raises(GameStreamError) as excinfo:
        xml_status(b'<root status_code="503"/>')

    assert excinfo.value.code == GSResult.ERROR
    assert "503" in gs_error()


def test_malformed_document():
    with pytest.raises(GameStreamError) as excinfo:
        xml_status(b"<root status_code=")

    assert excinfo.value.code == GSResult.INVALID


def test_find():
    assert xml_find(SERVERINFO, "hostname") == "DESKTOP-GAMES"
    assert xml_find(SERVERINFO, "mac") == ""
    assert xml_find(SERVERINFO, "gputype") is None


def test_search_missing_field():
    assert xml_search(SERVERINFO, "PairStatus") == "0"
    with pytest.raises(GameStreamError) as excinfo:
        xml_search(SERVERINFO, "plaincert")

    assert excinfo.value.code == GSResult.INVALID


def test_applist():
    data = b"""<root status_code="200">
        <App><IsHdrSupported>0</IsHdrSupported><AppTitle>Desktop</AppTitle><ID>1</ID></App>
        <App><IsHdrSupported>1</IsHdrSupported><AppTitle>Steam Big Picture</AppTitle><ID>2</ID></App>
        <App><AppTitle>Moonlight &amp; Co</AppTitle><ID>3</ID></App>
    </root>"""

    assert xml_applist(data) == [
        AppEntry(1, "Desktop", False),
        AppEntry(2, "Steam Big Picture", True),
        AppEntry(3, "Moonlight & Co", False),
    ]


def test_applist_empty():
    assert xml_applist(b'<root status_code="200"/>') == []


@pytest.mark.parametrize("app", [
    b"<App><AppTitle>Desktop</AppTitle></App>",
    b"<App><ID>1</ID></App>",
    b"<App><AppTitle>Desktop</AppTitle><ID>one</ID></App>",
])
def test_applist_bad_entry(app):
    with pytest.raises(GameStreamError) as excinfo:
        xml_applist(b'<root status_code="200">' + app + b"</root>")

    assert excinfo.value.code == GSResult.INVALID


def test_find_only_looks_at_children_of_root():
    data = b'<root status_code="200"><App><ID>7</ID></App><root>nested</root></root>'

    assert xml_find(data, "ID") is None
    assert xml_find(data, "root") == "nested"
    assert xml_find(b'<root status_code="200"/>', "root") is None
