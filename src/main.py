from __future__ import annotations

import sys

from tailordesk.auth import AuthError, IdentityClient
from tailordesk.cli import run_cli
from tailordesk.config import ConfigError, load_config
from tailordesk.db import Db, DbError
from tailordesk.logging_config import configure_logging


def main(config_path: str = "config.toml") -> int:
    try:
        cfg = load_config(config_path)
        configure_logging(cfg.log_level)
        if cfg.suspended:
            print(f"[SUSPENDED] Service paused. Contact support: {cfg.billing.support_phone or '-'}")
            return 1
        db = Db(cfg.db)
        run_cli(db, IdentityClient(cfg.auth), cfg)
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except DbError as e:
        print(f"[DB ERROR] {e}")
        return 3
    except AuthError as e:
        print(f"[AUTH ERROR] {e}")
        return 4
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


def cli_entry() -> None:
    raise SystemExit(main(*sys.argv[1:2]))


if __name__ == "__main__":
    cli_entry()
