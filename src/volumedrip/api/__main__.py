# src/volumedrip/api/__main__.py
from __future__ import annotations

import uvicorn

from volumedrip.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so VOLUMEDRIP_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from volumedrip.api.app import create_app
    from volumedrip.runtime.chain_config import load_drip_config

    cfg = load_drip_config()
    uvicorn.run(create_app(), host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
