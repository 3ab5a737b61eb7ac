# src/storefront/api/__main__.py
from __future__ import annotations

import uvicorn

from storefront.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so STOREFRONT_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from storefront.api.app import create_app
    from storefront.runtime.config import load_market_config
    from storefront.runtime.event_log import configure_structured_logging

    cfg = load_market_config()
    configure_structured_logging(cfg.log_level)

    uvicorn.run(create_app(), host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
