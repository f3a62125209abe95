"""Tests for the tool-output parsers."""

from __future__ import annotations

from pathlib import Path

import pytest

from kkp.finder.parsers import (
    is_garbled,
    parse_addr_port,
    parse_lsof,
    parse_netstat,
    parse_ss,
    parse_tasklist_csv,
    parse_windows_addr_port,
    scrub_text,
)
from kkp.models import TCP, UDP


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("0.0.0.0:3000", (3000, "0.0.0.0")),
        ("*:5173", (5173, "*")),
        ("[::]:22", (22, "[::]")),
        (":::8080", (8080, "::")),
        ("127.0.0.53%lo:53", (53, "127.0.0.53%lo")),
        ("0.0.0.0:*", (None, None)),
        ("0.0.0.0:0", (None, None)),
        ("0.0.0.0:70000", (None, None)),
    ],
)
def test_parse_addr_port(token, expected):
    assert parse_addr_port(token) == expected


def test_parse_windows_addr_port_strips_brackets():
    assert parse_windows_addr_port("[::]:5353") == (5353, "::")
    assert parse_windows_addr_port("[::1]:3000") == (3000, "::1")
    assert parse_windows_addr_port("0.0.0.0:135") == (135, "0.0.0.0")
    assert parse_windows_addr_port("*:*") == (None, None)


# -- ss --


def test_parse_ss_fixture(fixtures_dir: Path):
    out = parse_ss((fixtures_dir / "ss_tcp.txt").read_text(), TCP)

    assert [(item.port, item.pid, item.local_address) for item in out] == [
        (3000, 4242, "0.0.0.0"),
        (22, 812, "[::]"),
        (3000, 4242, "[::]"),
    ]
    assert out[0].process_name == "node"
    assert out[0].source == "ss"
    assert out[0].raw.startswith("LISTEN")
    assert all(item.protocol == TCP for item in out)


def test_parse_ss_drops_rows_without_pid():
    line = "UNCONN 0 0 0.0.0.0:68 0.0.0.0:*"
    assert parse_ss(line, UDP) == []


def test_parse_ss_drops_short_lines():
    assert parse_ss("LISTEN 0 128 0.0.0.0:22", TCP) == []


def test_parse_ss_tolerates_garbage():
    assert parse_ss("\n\nnot ss output at all\n   \n", TCP) == []


def test_parse_ss_without_name():
    line = 'LISTEN 0 5 127.0.0.1:631 0.0.0.0:* users:((pid=900,fd=7))'
    (listener,) = parse_ss(line, TCP)
    assert listener.pid == 900
    assert listener.process_name is None


# -- lsof --


def test_parse_lsof_fixture(fixtures_dir: Path):
    out = parse_lsof((fixtures_dir / "lsof_tcp.txt").read_text())

    assert [(item.port, item.pid, item.local_address) for item in out] == [
        (3000, 4242, "*"),
        (8000, 5151, "[::1]"),
        (5432, 612, "127.0.0.1"),
    ]
    assert out[0].process_name == "node"
    assert out[0].user == "alice"
    assert out[2].user == "postgres"
    assert all(item.source == "lsof" for item in out)


def test_parse_lsof_udp_row():
    text = (
        "COMMAND     PID           USER   FD   TYPE DEVICE SIZE/OFF NODE NAME\n"
        "mDNSRespo  301 _mdnsresponder    8u  IPv4 0x9f01      0t0  UDP *:5353\n"
    )
    (listener,) = parse_lsof(text)
    assert listener.protocol == UDP
    assert listener.port == 5353


def test_parse_lsof_skips_rows_before_header():
    text = (
        "lsof: WARNING: can't stat() fuse file system /run/user/1000/doc\n"
        "COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME\n"
        "node 4242 alice 19u IPv4 0x1 0t0 TCP *:3000 (LISTEN)\n"
    )
    assert [item.port for item in parse_lsof(text)] == [3000]


def test_parse_lsof_drops_malformed_rows():
    text = (
        "COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME\n"
        "node abc alice 19u IPv4 0x1 0t0 TCP *:3000 (LISTEN)\n"
        "node 4242 alice 19u IPv4\n"
        "node 4242 alice 19u IPv4 0x1 0t0 TCP *:http (LISTEN)\n"
    )
    assert parse_lsof(text) == []


# -- netstat --


def test_parse_netstat_tcp_keeps_only_listening(fixtures_dir: Path):
    out = parse_netstat((fixtures_dir / "netstat_tcp.txt").read_text(), TCP)

    assert [(item.port, item.pid) for item in out] == [(135, 1020), (3000, 4242), (445, 4)]
    assert all(item.local_address == "0.0.0.0" for item in out)


def test_parse_netstat_drops_established_tcp_row():
    line = "  TCP    127.0.0.1:3000    127.0.0.1:52100    ESTABLISHED    4242"
    assert parse_netstat(line, TCP) == []


def test_parse_netstat_keeps_udp_rows(fixtures_dir: Path):
    out = parse_netstat((fixtures_dir / "netstat_udp.txt").read_text(), UDP)

    assert [(item.port, item.pid, item.local_address) for item in out] == [
        (5353, 2288, "0.0.0.0"),
        (5353, 2288, "::"),
    ]
    assert all(item.protocol == UDP for item in out)


def test_parse_netstat_stores_stripped_raw_line():
    line = "  TCP    0.0.0.0:3000    0.0.0.0:0    LISTENING    4242  "
    (listener,) = parse_netstat(line, TCP)
    assert listener.raw == "TCP    0.0.0.0:3000    0.0.0.0:0    LISTENING    4242"


def test_parse_netstat_ignores_other_protocol(fixtures_dir: Path):
    assert parse_netstat((fixtures_dir / "netstat_udp.txt").read_text(), TCP) == []


def test_parse_netstat_localized_headers_are_dropped():
    text = (
        "活动连接\n\n"
        "  协议  本地地址          外部地址        状态           PID\n"
        "  TCP    0.0.0.0:3000    0.0.0.0:0       LISTENING       4242\n"
    )
    assert [item.pid for item in parse_netstat(text, TCP)] == [4242]


# -- tasklist --


def test_parse_tasklist_csv(fixtures_dir: Path):
    infos = parse_tasklist_csv((fixtures_dir / "tasklist.csv").read_text())

    assert infos[4242].name == "node.exe"
    assert infos[4242].user == "DESKTOP-01\\alice"
    assert infos[1020].user == "NT AUTHORITY\\SYSTEM"
    assert infos[4].name == "System"


def test_parse_tasklist_csv_drops_garbled_user():
    text = '"weird.exe","7777","Console","1","1,000 K","Running","��\\alice","0:00:00","N/A"'
    info = parse_tasklist_csv(text)[7777]
    assert info.name == "weird.exe"
    assert info.user is None


def test_parse_tasklist_csv_skips_short_rows():
    assert parse_tasklist_csv('"INFO: No tasks are running"') == {}


def test_is_garbled():
    assert is_garbled("锟斤拷")
    assert is_garbled("abc�")
    assert not is_garbled("NT AUTHORITY\\SYSTEM")


def test_scrub_text():
    assert scrub_text("  ERROR: \x1b[31mfailedé\r\n") == "ERROR: [31mfailed"
