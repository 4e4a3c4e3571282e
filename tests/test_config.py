import pytest

from fleetwork.config import (
    DEFAULT_REMOTE_INPUT_DIR,
    DEFAULT_REMOTE_OUTPUT_DIR,
    Worker,
    load_config,
    parse_config,
)
from fleetwork.errors import ConfigError

EXAMPLE = """
workers:
  - host: worker1.example.com
  - host: deploy@worker2.example.com
  - worker3
setup: |
  apt-get install -y ffmpeg
run: |
  upload-input
  ./process.sh
  download-output
scripts:
  status: uptime
remote_output_dir: /data/out
transport:
  shell: asyncssh
  ssh_options: ["-o", "BatchMode=yes"]
"""


def test_load_example(tmp_path):
    path = tmp_path / "fleetwork.yml"
    path.write_text(EXAMPLE)

    config = load_config(path)

    assert config.workers == [
        Worker("worker1.example.com"),
        Worker("deploy@worker2.example.com"),
        Worker("worker3"),
    ]
    assert set(config.scripts) == {"setup", "run", "status"}
    assert config.remote_input_dir == DEFAULT_REMOTE_INPUT_DIR
    assert config.remote_output_dir == "/data/out"
    assert config.work_root == tmp_path / "workers"
    assert config.transport.shell == "asyncssh"
    assert config.transport.ssh_options == ["-o", "BatchMode=yes"]
    assert config.source_path == path.resolve()
    assert not config.fail_fast


def test_operation_binds_remote_dirs(tmp_path):
    config = parse_config({"workers": ["a"], "run": "echo hi\n"})
    operation = config.operation("run")
    assert operation.script == "echo hi\n"
    assert operation.remote_input_dir == DEFAULT_REMOTE_INPUT_DIR
    assert operation.remote_output_dir == DEFAULT_REMOTE_OUTPUT_DIR
    with pytest.raises(KeyError):
        config.operation("missing")


def test_select_is_exact_match():
    config = parse_config({"workers": ["web1", "web10"]})
    assert config.select("") == config.workers
    assert config.select("web1") == [Worker("web1")]
    assert config.select("web") == []


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yml")


def test_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yml"
    path.write_text("workers: [a\n")
    with pytest.raises(ConfigError, match="parse"):
        load_config(path)


@pytest.mark.parametrize(
    "raw, message",
    [
        ({}, "No workers"),
        ({"workers": "a"}, "must be a list"),
        ({"workers": [{"name": "x"}]}, "host"),
        ({"workers": ["a", "a"]}, "Duplicate"),
        ({"workers": ["a"], "run": "x", "scripts": {"run": "y"}}, "defined twice"),
        ({"workers": ["a"], "scripts": {"s": ["not", "text"]}}, "must be a string"),
        ({"workers": ["a"], "transport": {"shell": "telnet"}}, "Unknown shell"),
        ({"workers": ["a"], "transport": {"ssh_options": "-v"}}, "must be a list"),
    ],
)
def test_invalid_configs(raw, message):
    with pytest.raises(ConfigError, match=message):
        parse_config(raw)


def test_config_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_config({"workers": []})
