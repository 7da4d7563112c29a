"""
Load examples/config.yaml into a schema and print changes until interrupted.

    SYNX_SERVER_PORT=9090 python examples/run_config.py
"""

import threading
from datetime import timedelta
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field

import strata


class ServerConfig(BaseModel):
    port: int = Field(..., ge=1, le=65535)
    read_timeout: timedelta = timedelta(seconds=30)


class DatabaseConfig(BaseModel):
    host: str
    port: int = 5432
    password: str = ""


class AppConfig(BaseModel):
    server: ServerConfig
    database: DatabaseConfig
    features: List[str] = []


def main() -> None:
    strata.configure_logging(level="INFO", enqueue=False)
    config_path = Path(__file__).parent / "config.yaml"

    with strata.new(
        config_path,
        schema=AppConfig,
        env_prefix="SYNX",
        defaults={"server.port": 8000, "database.host": "127.0.0.1"},
        watch=True,
    ) as cfg:
        cfg.load()
        app = cfg.get_schema()
        print(f"server port {app.server.port}, database {app.database.host}:{app.database.port}")

        stop = threading.Event()

        def on_change() -> None:
            print(f"reloaded: server port is now {cfg.get_int('server.port')}")

        cfg.watch(stop, on_change)
        try:
            stop.wait()
        except KeyboardInterrupt:
            stop.set()


if __name__ == "__main__":
    main()
