"""로깅 설정 모듈.

서버 시작 시 한 번 호출하여 콘솔/일자별 파일 로그를 설정하고,
보관 기간이 지난 로그 파일을 정리합니다.

사용 예시:
    from roomcall.logging_config import setup_logging

    setup_logging()
"""

import glob
import logging
import os
from datetime import datetime, timedelta
from typing import Optional

from .config import server_config


def cleanup_old_logs(log_dir: str = server_config.LOG_DIR,
                     retention_days: int = server_config.LOG_RETENTION_DAYS) -> int:
    """오래된 로그 파일을 삭제합니다.

    Args:
        log_dir: 로그 디렉토리 경로
        retention_days: 보관 기간 (일)

    Returns:
        삭제된 파일 수
    """
    if not os.path.exists(log_dir):
        return 0

    cutoff_date = datetime.now() - timedelta(days=retention_days)
    deleted_count = 0

    for log_file in glob.glob(os.path.join(log_dir, "server_*.log")):
        try:
            date_str = os.path.basename(log_file)[len("server_"):-len(".log")]
            if datetime.strptime(date_str, "%Y%m%d") < cutoff_date:
                os.remove(log_file)
                deleted_count += 1
        except (ValueError, OSError):
            continue

    return deleted_count


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> str:
    """루트 로거를 설정합니다.

    Args:
        level: 로그 레벨 (기본: LOG_LEVEL 환경변수)
        log_dir: 로그 디렉토리 (기본: LOG_DIR 환경변수)

    Returns:
        str: 오늘자 로그 파일 경로
    """
    level = (level or server_config.LOG_LEVEL).upper()
    log_dir = log_dir or server_config.LOG_DIR

    os.makedirs(log_dir, exist_ok=True)
    log_filename = os.path.join(log_dir, f"server_{datetime.now().strftime('%Y%m%d')}.log")

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),  # 콘솔 출력
            logging.FileHandler(log_filename, encoding="utf-8"),  # 파일 저장
        ]
    )
    return log_filename
