import errno

import pytest

from conftest import BrokenStreamSocket, attach_socket, menu, split_every
from rodent import (
    Address,
    ConnectError,
    Directory,
    DirectoryClosedError,
    History,
    ItemType,
    NotConnectedError,
    Recurse,
)
from rodent.constants import DIAGNOSTIC_HOST, DIAGNOSTIC_SELECTOR


def fetch(server, selector=""):
    return Directory.fetch(Address(server.host, server.port, selector or None))


def test_request_requires_a_connection(gopher_server):
    with pytest.raises(NotConnectedError):
        Directory.request(Address(gopher_server.host, gopher_server.port))


def test_request_sends_the_selector(gopher_server):
    gopher_server.serve("/docs", menu(gopher_server.link("0", "Readme", "/docs/readme.txt")))
    addr = Address(gopher_server.host, gopher_server.port, "/docs")
    addr.connect()
    try:
        directory = Directory.request(addr)
    finally:
        addr.disconnect()

    assert gopher_server.requests == ["/docs"]
    assert directory.items_count() == 1
    assert directory.error_count() == 0
    assert directory.terminated
    item = directory.items()[0]
    assert item.type is ItemType.TEXT
    assert item.label == "Readme"
    assert item.target == Address(gopher_server.host, gopher_server.port, "/docs/readme.txt", ItemType.TEXT)


def test_none_selector_requests_root(gopher_server):
    gopher_server.serve("", menu("iWelcome\tfake\t(NULL)\t0"))
    directory = fetch(gopher_server)
    assert gopher_server.requests == [""]
    assert [i.label for i in directory] == ["Welcome"]


def test_items_keep_source_order(gopher_server):
    lines = [gopher_server.link("0", f"File {n}", f"/f{n}") for n in range(25)]
    gopher_server.serve("", menu(*lines))
    directory = fetch(gopher_server)
    assert [i.label for i in directory.items()] == [f"File {n}" for n in range(25)]
    assert len(directory) == directory.items_count() == 25
    assert directory[3].label == "File 3"


def test_empty_listing(gopher_server):
    gopher_server.serve("", menu())
    directory = fetch(gopher_server)
    assert directory.items_count() == 0
    assert directory.error_count() == 0


def test_parsing_resilience(gopher_server):
    payload = (
        gopher_server.link("1", "Well formed", "/wf") + "\r\n"
        "\r\n"
        "0Truncated label\r\n"
        ".\r\n"
    )
    gopher_server.serve("", payload)
    directory = fetch(gopher_server)

    assert directory.items_count() == 2
    assert directory.error_count() == 2
    first, second = directory.items()
    assert not first.is_diagnostic
    assert second.label == "Truncated label"
    assert second.target.diagnostic
    assert second.target.host == DIAGNOSTIC_HOST
    assert second.target.port == 0
    assert second.target.selector == DIAGNOSTIC_SELECTOR


def test_missing_terminator(gopher_server):
    payload = menu(
        gopher_server.link("0", "One", "/1"),
        gopher_server.link("0", "Two", "/2"),
        terminate=False,
    )
    gopher_server.serve("", payload)
    directory = fetch(gopher_server)
    assert directory.items_count() == 2
    assert directory.error_count() == 1
    assert not directory.terminated


def test_fragmented_response_parses_like_whole(gopher_server):
    payload = menu(*[gopher_server.link("0", f"Entry {n}", f"/e{n}") for n in range(5)])
    gopher_server.serve("", split_every(payload, 7), chunk_delay=0.002)
    directory = fetch(gopher_server)
    assert [i.label for i in directory] == [f"Entry {n}" for n in range(5)]
    assert directory.error_count() == 0


def test_bare_lf_server(gopher_server):
    payload = (
        gopher_server.link("0", "One", "/1") + "\n" +
        gopher_server.link("0", "Two", "/2") + "\n.\n"
    )
    gopher_server.serve("", payload)
    directory = fetch(gopher_server)
    assert directory.items_count() == 2
    assert directory.error_count() == 0
    assert directory.bare_lf_count == 3
    assert directory.terminated


def test_listing_cut_short_keeps_what_arrived(caplog):
    addr = Address("g.test.com", 70, "/x")
    payload = menu(
        "0One\t/1\tg.test.com\t70",
        "0Two\t/2\tg.test.com\t70",
        terminate=False,
    )
    sock = BrokenStreamSocket([payload], ConnectionResetError(errno.ECONNRESET, "Connection reset by peer"))
    attach_socket(addr, sock)

    with caplog.at_level("ERROR", logger="rodent"):
        directory = Directory.request(addr)

    assert sock.sent == b"/x\r\n"
    assert [i.label for i in directory] == ["One", "Two"]
    assert directory.error_count() == 1
    assert not directory.terminated
    assert "cut short" in caplog.text

    directory.free()
    assert sock.closed


def test_errors_are_logged(gopher_server, caplog):
    gopher_server.serve("", "\r\n.\r\n")
    with caplog.at_level("WARNING", logger="rodent"):
        directory = fetch(gopher_server)
    assert directory.error_count() == 1
    assert "blank line" in caplog.text


def test_injected_logger_receives_warnings(gopher_server, caplog):
    import logging

    gopher_server.serve("", "0Truncated\r\n")
    sink = logging.getLogger("frontend.gopher")
    with caplog.at_level("WARNING", logger="frontend.gopher"):
        directory = Directory.fetch(Address(gopher_server.host, gopher_server.port, logger=sink))
    assert directory.error_count() == 2
    assert any(r.name == "frontend.gopher" for r in caplog.records)
    assert directory.items()[0].target.logger is sink


def test_address_is_borrowed_and_disconnected(gopher_server):
    gopher_server.serve("", menu())
    directory = fetch(gopher_server)
    assert not directory.address.connected
    assert directory.url() == f"gopher://{gopher_server.host}:{gopher_server.port}/"


def test_free_disconnects_its_address(gopher_server):
    gopher_server.serve("", menu())
    addr = Address(gopher_server.host, gopher_server.port)
    addr.connect()
    directory = Directory.request(addr)
    assert addr.connected
    directory.free()
    assert not addr.connected
    assert directory.closed
    assert directory.items_count() == 0
    # Already disconnected: no double close.
    assert addr.disconnect() is False


# ---------- History ----------

@pytest.fixture
def site(gopher_server):
    s = gopher_server
    s.serve("", menu(s.link("1", "A", "/a"), s.link("1", "B", "/b"), s.link("1", "C", "/c")))
    for name in ("a", "b", "c"):
        s.serve(f"/{name}", menu(f"iThis is {name}\tfake\t(NULL)\t0"))
    s.serve("/a/deep", menu("iDeep\tfake\t(NULL)\t0"))
    return s


def labels(directory):
    return [i.label for i in directory]


def test_push_prev_next(site):
    root = fetch(site)
    assert not root.has_prev()
    assert not root.has_next()

    a = root.push(root.items()[0].address)
    b = a.push(Address(site.host, site.port, "/b", ItemType.DIR))
    assert labels(b) == ["This is b"]
    assert b.is_current

    back = b.prev()
    assert back is a
    assert a.is_current
    assert a.has_next()
    assert a.next() is b
    assert b.is_current
    assert root.history.entries == (root, a, b)


def test_push_discards_forward_history(site):
    root = fetch(site)
    a = root.push(site.url("1/a"))
    b = a.push(site.url("1/b"))
    assert b.prev() is a

    c = a.push(site.url("1/c"))
    assert a.next() is c
    assert b.closed
    assert root.history.entries == (root, a, c)
    with pytest.raises(DirectoryClosedError):
        b.has_next()


def test_failed_push_keeps_history(site, closed_port):
    root = fetch(site)
    a = root.push(site.url("1/a"))
    b = a.push(site.url("1/b"))
    a.prev()
    with pytest.raises(ConnectError):
        a.push(Address("127.0.0.1", closed_port, "/x"))
    assert a.next() is b
    assert not b.closed


def test_push_accepts_urls_and_borrowed_addresses(site):
    root = fetch(site)
    via_item = root.push(root.items()[1].address)
    via_url = via_item.push(site.url("1/c"))
    assert labels(via_item) == ["This is b"]
    assert labels(via_url) == ["This is c"]
    assert root.items()[1].target.connected is False


def test_go_parent(site):
    root = fetch(site)
    deep = root.push(site.url("1/a/deep"))
    assert deep.has_parent()
    up = deep.go_parent()
    assert up.address.selector == "/a"
    assert labels(up) == ["This is a"]
    top = up.go_parent()
    assert top.address.selector is None
    assert not top.has_parent()
    assert top.go_parent() is None


def test_truncate_forward_and_backward(site):
    root = fetch(site)
    a = root.push(site.url("1/a"))
    b = a.push(site.url("1/b"))
    a.prev()

    assert a.truncate_forward() == 1
    assert b.closed
    assert not a.has_next()

    assert a.truncate_backward() == 1
    assert root.closed
    assert not a.has_prev()
    assert a.history.entries == (a,)


def test_free_with_recursion(site):
    root = fetch(site)
    a = root.push(site.url("1/a"))
    b = a.push(site.url("1/b"))

    a.free(Recurse.BOTH, inclusive=True)
    assert root.closed and a.closed and b.closed
    assert len(root.history) == 0
    assert root.history.current is None


def test_free_not_inclusive_keeps_self(site):
    root = fetch(site)
    a = root.push(site.url("1/a"))
    b = a.push(site.url("1/b"))

    a.free(Recurse.FORWARD, inclusive=False)
    assert not a.closed
    assert b.closed
    assert root.next() is a


def test_close_relinks_neighbours(site):
    root = fetch(site)
    a = root.push(site.url("1/a"))
    b = a.push(site.url("1/b"))
    b.prev()
    a.close()
    assert root.next() is b
    assert b.prev() is root


def test_context_manager_frees_history(site):
    with fetch(site) as root:
        a = root.push(site.url("1/a"))
    assert root.closed
    assert a.closed


def test_explicit_history_is_used_even_when_empty():
    history = History()
    directory = Directory(Address("g.test.com", 70, "/x"), history=history)
    assert directory.history is history
    assert history.entries == (directory,)
    assert history.current is directory


def test_push_copies_addresses_it_does_not_own(site):
    root = fetch(site)
    target = root.items()[0].target
    a = root.push(target)

    assert a.address == target
    target.selector = "/b"
    assert a.address.selector == "/a"
    assert labels(a) == ["This is a"]
