import socket

import pytest

import netsink
from core.config import DEFAULT_CONFIG, build_config


@pytest.fixture(autouse=True)
def no_config_files(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("core.config.CONFIG_PATHS", (str(tmp_path / "config.yaml"),))


def test_flags_override_defaults():
    args = netsink.parse_args(["-u", "-z", "-m", "-c", "-a", "-v", "--bufsize", "1KB",
                               "127.0.0.1:9000", "out-{{.Id}}"])
    cfg = build_config(netsink.merge_args(dict(DEFAULT_CONFIG), args))
    assert (cfg.host, cfg.port, cfg.output) == ("127.0.0.1", 9000, "out-{{.Id}}")
    assert cfg.udp and cfg.gzip and cfg.mutex and cfg.chunk and cfg.append and cfg.verbose
    assert cfg.udp_bufsize == 1024


def test_unset_flags_keep_file_values(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("address: ':7000'\nudp: true\nverbose: true\n")
    args = netsink.parse_args([])
    cfg = build_config(netsink.merge_args(netsink.load_config(), args))
    assert cfg.port == 7000 and cfg.udp and cfg.verbose


def test_bad_template_exits_nonzero(capsys):
    assert netsink.main(["127.0.0.1:0", "out-{{.Host}}"]) == 1
    assert "can't evaluate field Host" in capsys.readouterr().err


def test_missing_address_exits_nonzero(capsys):
    assert netsink.main([]) == 1
    assert "invalid listening address" in capsys.readouterr().err


def test_bind_failure_exits_nonzero(capsys):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = busy.getsockname()[1]
        assert netsink.main([f"127.0.0.1:{port}"]) == 1
    assert capsys.readouterr().err
