"""로그 설정 테스트."""

import os
from datetime import datetime, timedelta

from roomcall.logging_config import cleanup_old_logs


def _touch(path):
    with open(path, "w", encoding="utf-8") as f:
        f.write("log\n")


def test_cleanup_removes_only_expired_server_logs(tmp_path):
    old = (datetime.now() - timedelta(days=90)).strftime("%Y%m%d")
    today = datetime.now().strftime("%Y%m%d")
    for name in (f"server_{old}.log", f"server_{today}.log", "server_notadate.log", "other.log"):
        _touch(tmp_path / name)

    deleted = cleanup_old_logs(str(tmp_path), retention_days=60)

    assert deleted == 1
    assert set(os.listdir(tmp_path)) == {f"server_{today}.log", "server_notadate.log", "other.log"}


def test_cleanup_missing_directory(tmp_path):
    assert cleanup_old_logs(str(tmp_path / "missing"), retention_days=1) == 0
