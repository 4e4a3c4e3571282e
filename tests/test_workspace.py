from fleetwork.config import Worker
from fleetwork.workspace import as_dir, bootstrap, input_dir, output_dir


def test_bootstrap_creates_input_and_output_dirs(tmp_path):
    workers = [Worker("a"), Worker("user@b")]

    bootstrap(workers, tmp_path)
    bootstrap(workers, tmp_path)  # idempotent

    for worker in workers:
        assert input_dir(tmp_path, worker.host).is_dir()
        assert output_dir(tmp_path, worker.host).is_dir()
    assert (tmp_path / "a" / "input").is_dir()


def test_as_dir_adds_single_trailing_slash():
    assert as_dir("/data/out") == "/data/out/"
    assert as_dir("/data/out/") == "/data/out/"
