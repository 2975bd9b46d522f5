import io
import json
import os

import pytest

from port_scanner import cli
from port_scanner import scanner as scanner_mod
from conftest import FakeSocket


@pytest.fixture
def refuse_all(monkeypatch):
    def refuse(address, timeout=None):
        raise ConnectionRefusedError(111, "Connection refused")

    monkeypatch.setattr(scanner_mod, "open_connection", refuse)


@pytest.fixture
def ssh_on_22(monkeypatch):
    def connect(address, timeout=None):
        if address[1] == 22:
            return FakeSocket([b"SSH-2.0-OpenSSH_8.9p1\r\n"])
        raise ConnectionRefusedError(111, "Connection refused")

    monkeypatch.setattr(scanner_mod, "open_connection", connect)


def test_parser_defaults():
    args = cli.build_parser().parse_args(["10.0.0.1"])
    assert args.target == "10.0.0.1"
    assert (args.start, args.end) == (1, 65535)
    assert (args.timeout, args.banner_timeout, args.concurrency) == (500, 1500, 500)
    assert args.out_dir == "."
    assert not args.no_save


def test_parser_short_flags():
    args = cli.build_parser().parse_args(["h", "-s", "20", "-e", "25", "-t", "100", "-b", "200", "-c", "7"])
    cfg = cli.config_from_args(args)
    assert (cfg.start_port, cfg.end_port) == (20, 25)
    assert (cfg.connect_timeout_ms, cfg.banner_timeout_ms, cfg.concurrency) == (100, 200, 7)


def test_invalid_target_exits():
    with pytest.raises(SystemExit) as exc:
        cli.main(["not a host!", "--no-save"])
    assert "not a valid IP address or hostname" in str(exc.value.code)


def test_non_integer_port_is_usage_error(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["10.0.0.1", "-s", "abc"])
    assert exc.value.code == 2


def test_no_target_without_tty_prints_usage(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    assert cli.main([]) == 1
    assert "usage:" in capsys.readouterr().out


def test_scan_without_open_ports(refuse_all, capsys):
    assert cli.main(["127.0.0.1", "-s", "1", "-e", "5", "--no-save"]) == 0
    out = capsys.readouterr().out
    assert "Port Range   : 1 - 5" in out
    assert "Scanning [5/5]" in out
    assert "No open ports found." in out
    assert "5 ports scanned, 0 open" in out
    assert "Report saved" not in out


def test_scan_clamps_arguments(refuse_all, capsys):
    cli.main(["127.0.0.1", "-s", "65530", "-e", "99999", "-t", "1", "-c", "0", "--no-save"])
    out = capsys.readouterr().out
    assert "Port Range   : 65530 - 65535" in out
    assert "Timeout      : 50 ms (connect)" in out
    assert "Concurrency  : 1" in out


def test_scan_saves_report(ssh_on_22, tmp_path, capsys):
    assert cli.main(["scanme.example.com", "-s", "20", "-e", "30", "--out-dir", str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "Report saved ->" in out

    [name] = os.listdir(tmp_path)
    assert name.startswith("scan_scanme_example_com_") and name.endswith(".json")
    with open(tmp_path / name, encoding="utf-8") as f:
        data = json.load(f)
    assert data["portsScanned"] == 11
    assert data["openPorts"] == 1
    assert data["results"][0]["service"] == "SSH"
    assert data["results"][0]["banner"] == "SSH-2.0-OpenSSH_8.9p1"


def test_scan_uses_custom_ports_file(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(scanner_mod, "open_connection",
                        lambda address, timeout=None: FakeSocket())
    ports_file = tmp_path / "ports.csv"
    ports_file.write_text("7,Echo Service\n", encoding="utf-8")

    assert cli.main(["10.0.0.1", "-s", "7", "-e", "7", "-b", "100",
                     "--ports-file", str(ports_file), "--no-save"]) == 0
    assert "Echo Service" in capsys.readouterr().out


def test_failed_save_is_a_warning(ssh_on_22, monkeypatch, capsys):
    def no_disk(report, out_dir="."):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(cli, "save_report", no_disk)
    assert cli.main(["10.0.0.1", "-s", "22", "-e", "22"]) == 0
    assert "Warning: Could not save report" in capsys.readouterr().out


def scripted(*answers):
    it = iter(answers)
    return lambda prompt: next(it)


def test_prompt_config_defaults():
    cfg = cli.prompt_config(scripted("10.0.0.9", "", "", "", "", ""))
    assert cfg.target == "10.0.0.9"
    assert (cfg.start_port, cfg.end_port) == (1, 65535)
    assert (cfg.connect_timeout_ms, cfg.banner_timeout_ms, cfg.concurrency) == (500, 1500, 500)


def test_prompt_config_retries_bad_input(capsys):
    cfg = cli.prompt_config(scripted(
        "bad host", "example.org",
        "0", "100",
        "50", "200",
        "x", "750",
        "1200",
        "9000", "64",
    ))
    assert cfg.target == "example.org"
    assert (cfg.start_port, cfg.end_port) == (100, 200)
    assert (cfg.connect_timeout_ms, cfg.banner_timeout_ms, cfg.concurrency) == (750, 1200, 64)

    out = capsys.readouterr().out
    assert "Invalid target" in out
    assert "Enter a number between 1 and 65535." in out
    assert "Enter a number between 100 and 65535." in out
    assert "Enter a number between 1 and 5000." in out


class TtyInput(io.StringIO):
    def isatty(self):
        return True


@pytest.mark.parametrize("error", [EOFError, KeyboardInterrupt])
def test_interactive_input_closed_returns_1(monkeypatch, capsys, error):
    def closed_stdin():
        raise error

    monkeypatch.setattr("sys.stdin", TtyInput(""))
    monkeypatch.setattr(cli, "prompt_config", closed_stdin)

    assert cli.main([]) == 1
    out = capsys.readouterr().out
    assert "Port Scanner v" in out
    assert "Aborted." in out


def test_header_printed_before_configuration(refuse_all, capsys):
    cli.main(["127.0.0.1", "-s", "1", "-e", "1", "--no-save"])
    out = capsys.readouterr().out
    assert out.index("Port Scanner v1.0.0") < out.index("-- Configuration")
