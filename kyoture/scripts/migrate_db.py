from __future__ import annotations

from datetime import datetime, timezone

from kyoture.core.env import load_env
from kyoture.db.session import engine, init_db
from kyoture.logging import configure_logging


def main() -> None:
    load_env()
    configure_logging()
    init_db(engine)
    print(f"Migration completed at {datetime.now(tz=timezone.utc).isoformat()}")


if __name__ == "__main__":
    main()
