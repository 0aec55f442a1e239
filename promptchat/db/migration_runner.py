from __future__ import annotations

import threading
from pathlib import Path

from alembic import command
from alembic.config import Config

from promptchat.logging_config import logger
from promptchat.settings import settings

_MIGRATION_LOCK = threading.Lock()
_MIGRATION_APPLIED = False


def _should_auto_apply() -> bool:
    """
    仅在 Postgres 数据库上自动执行迁移，避免在测试用的 SQLite/内存库上运行。
    """
    if not settings.auto_apply_db_migrations:
        return False
    url = settings.database_url.lower()
    if url.startswith("sqlite"):
        return False
    return url.startswith("postgres")


def _build_alembic_config(base_dir: Path) -> Config:
    cfg = Config(str(base_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(base_dir / "alembic"))
    cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return cfg


def auto_upgrade_database() -> None:
    """
    在进程启动时确保数据库 schema 升级到最新版本。
    该逻辑仅执行一次，并且只针对 Postgres 数据库运行。
    """
    global _MIGRATION_APPLIED
    if _MIGRATION_APPLIED or not _should_auto_apply():
        return

    with _MIGRATION_LOCK:
        if _MIGRATION_APPLIED:
            return

        base_dir = Path(__file__).resolve().parents[2]
        alembic_ini = base_dir / "alembic.ini"
        if not alembic_ini.exists():
            logger.warning(
                "Alembic 配置文件 %s 不存在，跳过自动迁移。请确认部署环境是否包含迁移脚本。",
                alembic_ini,
            )
            _MIGRATION_APPLIED = True
            return

        logger.info("自动执行 Alembic 迁移，确保数据库 schema 为最新版本...")
        try:
            command.upgrade(_build_alembic_config(base_dir), "head")
        except Exception:
            logger.exception("自动执行 Alembic 迁移失败，请手动运行 'alembic upgrade head'。")
            raise
        else:
            logger.info("数据库迁移完成。")
            _MIGRATION_APPLIED = True
