import os
import stat

import pytest

from graphite_ch.carbon import CONTAINER_NAME, DEFAULT_IMAGE, DEFAULT_VERSION, CarbonClickhouse
from graphite_ch.docker import Docker, DockerError
from graphite_ch.templating import TemplateError


def _fake_docker(tmp_path, exit_code=0):
    log = tmp_path / "docker.log"
    script = tmp_path / "fake-docker"
    script.write_text(
        "#!/bin/sh\n"
        f'echo "$@" >> "{log}"\n'
        "echo ok\n"
        f"exit {exit_code}\n",
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return Docker(binary=str(script), network="net-test"), log


def _template(tmp_path):
    test_dir = tmp_path / "case"
    test_dir.mkdir()
    (test_dir / "cch.tpl").write_text(
        'listen = "{{.CCH_ADDR}}"\nurl = "{{.CLICKHOUSE_URL}}"\n', encoding="utf-8"
    )
    return str(test_dir)


def _store_dir(log):
    run_line = log.read_text(encoding="utf-8").splitlines()[0].split()
    volume = run_line[run_line.index("-v") + 1]
    return volume.split(":")[0]


def test_from_dict():
    cch = CarbonClickhouse.from_dict({"version": "0.11.7", "image": "img", "template": "t.tpl", "tz": "UTC"})
    assert (cch.version, cch.docker_image, cch.template, cch.tz) == ("0.11.7", "img", "t.tpl", "UTC")


def test_start_renders_config_and_runs_container(tmp_path):
    docker, log = _fake_docker(tmp_path)
    cch = CarbonClickhouse(template="cch.tpl", docker=docker)
    output = cch.start(_template(tmp_path), "http://clickhouse:8123")
    assert output == "ok"
    assert cch.version == DEFAULT_VERSION
    assert cch.docker_image == DEFAULT_IMAGE
    assert cch.container() == CONTAINER_NAME

    run_args = log.read_text(encoding="utf-8").splitlines()[0].split()
    assert run_args[:4] == ["run", "-d", "--name", CONTAINER_NAME]
    assert run_args[-1] == f"{DEFAULT_IMAGE}:{DEFAULT_VERSION}"
    assert "net-test" in run_args
    assert cch.address() + ":2003" in run_args

    config = os.path.join(_store_dir(log), "carbon-clickhouse.conf")
    with open(config, encoding="utf-8") as fh:
        content = fh.read()
    assert content == f'listen = "{cch.address()}"\nurl = "http://clickhouse:8123"\n'
    cch.stop(True)


def test_stop_with_delete_removes_container_and_store(tmp_path):
    docker, log = _fake_docker(tmp_path)
    cch = CarbonClickhouse(template="cch.tpl", docker=docker)
    cch.start(_template(tmp_path), "http://clickhouse:8123")
    store = _store_dir(log)
    assert cch.stop(True) == "ok"
    assert cch.container() == ""
    assert not os.path.exists(store)
    commands = [line.split()[0] for line in log.read_text(encoding="utf-8").splitlines()]
    assert commands[-2:] == ["stop", "rm"]


def test_stop_without_start_does_nothing(tmp_path):
    docker, log = _fake_docker(tmp_path)
    cch = CarbonClickhouse(docker=docker)
    assert cch.stop(True) == ""
    assert not log.exists()


def test_start_failure_raises(tmp_path):
    docker, _ = _fake_docker(tmp_path, exit_code=1)
    cch = CarbonClickhouse(template="cch.tpl", docker=docker)
    with pytest.raises(DockerError):
        cch.start(_template(tmp_path), "http://clickhouse:8123")


def test_bad_template_cleans_up(tmp_path):
    docker, log = _fake_docker(tmp_path)
    test_dir = tmp_path / "case"
    test_dir.mkdir()
    (test_dir / "bad.tpl").write_text("x = {{.UNKNOWN}}", encoding="utf-8")
    cch = CarbonClickhouse(template="bad.tpl", docker=docker)
    with pytest.raises(TemplateError):
        cch.start(str(test_dir), "http://clickhouse:8123")
    assert not log.exists()
    assert cch._store_dir == ""