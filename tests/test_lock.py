# tests/test_lock.py
from __future__ import annotations

import pytest

from leadsync.exceptions import StageAlreadyRunningError
from leadsync.lock import lock_path_for, stage_lock


def test_second_acquisition_fails_fast(tmp_path) -> None:
    with stage_lock("verify", tmp_path) as path:
        assert path == tmp_path / "leadsync-verify.lock"
        assert path.exists()

        with pytest.raises(StageAlreadyRunningError) as ei, stage_lock("verify", tmp_path):
            pass

        assert ei.value.stage == "verify"


def test_lock_released_and_removed_after_exit(tmp_path) -> None:
    with stage_lock("import", tmp_path):
        pass

    assert not lock_path_for("import", tmp_path).exists()

    with stage_lock("import", tmp_path):
        pass


def test_lock_released_on_exception(tmp_path) -> None:
    with pytest.raises(RuntimeError), stage_lock("export", tmp_path):
        raise RuntimeError("stage blew up")

    assert not lock_path_for("export", tmp_path).exists()
    with stage_lock("export", tmp_path):
        pass


def test_different_stages_do_not_block_each_other(tmp_path) -> None:
    with stage_lock("import", tmp_path), stage_lock("verify", tmp_path):
        assert lock_path_for("import", tmp_path).exists()
        assert lock_path_for("verify", tmp_path).exists()


def test_lock_dir_is_created(tmp_path) -> None:
    lock_dir = tmp_path / "run" / "locks"
    with stage_lock("stats", lock_dir) as path:
        assert path.parent == lock_dir
