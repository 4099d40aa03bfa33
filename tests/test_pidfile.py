import os

import pytest

from lmd.pidfile import (
    AlreadyRunningError,
    check_pid_file,
    create_pid_file,
    delete_pid_file,
)


def test_check_missing_file_is_not_stale(tmp_path):
    assert check_pid_file(str(tmp_path / "missing.pid")) is True


def test_check_garbage_file_is_stale(tmp_path):
    path = tmp_path / "lmd.pid"
    path.write_text("not a pid\n")
    assert check_pid_file(str(path)) is False


def test_check_running_process_raises(tmp_path):
    path = tmp_path / "lmd.pid"
    path.write_text(f"{os.getpid()}\n")
    with pytest.raises(AlreadyRunningError) as info:
        check_pid_file(str(path))
    assert info.value.pid == os.getpid()
    assert "already running" in str(info.value)


def test_create_writes_current_pid(tmp_path):
    path = tmp_path / "lmd.pid"
    create_pid_file(str(path))
    assert path.read_text() == f"{os.getpid()}\n"


def test_create_replaces_stale_file_with_warning(tmp_path, capsys):
    path = tmp_path / "lmd.pid"
    path.write_text("garbage")
    create_pid_file(str(path))
    assert path.read_text().strip() == str(os.getpid())
    assert "removing stale pidfile" in capsys.readouterr().err


def test_create_refuses_when_running(tmp_path):
    path = tmp_path / "lmd.pid"
    create_pid_file(str(path))
    with pytest.raises(AlreadyRunningError):
        create_pid_file(str(path))


def test_create_in_missing_directory_raises(tmp_path):
    with pytest.raises(OSError):
        create_pid_file(str(tmp_path / "nodir" / "lmd.pid"))


def test_delete_removes_file(tmp_path):
    path = tmp_path / "lmd.pid"
    create_pid_file(str(path))
    delete_pid_file(str(path))
    assert not path.exists()


def test_delete_missing_file_is_ignored(tmp_path):
    path = tmp_path / "lmd.pid"
    delete_pid_file(str(path))
    delete_pid_file("")
    assert not path.exists()