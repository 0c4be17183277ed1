"""arq worker settings module.

Import path for arq CLI: arq ibc.workers.settings.WorkerSettings
"""

from __future__ import annotations

from arq.connections import RedisSettings

from ibc.config import get_settings
from ibc.workers.payout_worker import PayoutWorkerSettings


class WorkerSettings(PayoutWorkerSettings):
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)


__all__ = ["WorkerSettings"]
