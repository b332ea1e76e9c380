import os
from copy import deepcopy
from typing import Any, Dict

import uvicorn
from uvicorn.config import LOGGING_CONFIG


def _log_config(log_level: str) -> Dict[str, Any]:
    """
    uvicorn's default logging config plus a handler for the `surgidb` loggers,
    so service warnings (conflicts, partial invoice deductions) reach the
    same stream as the access log.
    """
    config = deepcopy(LOGGING_CONFIG)
    config["formatters"]["surgidb"] = {
        "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
    }
    config["handlers"]["surgidb"] = {
        "class": "logging.StreamHandler",
        "formatter": "surgidb",
        "stream": "ext://sys.stderr",
    }
    config["loggers"]["surgidb"] = {
        "handlers": ["surgidb"],
        "level": log_level.upper(),
        "propagate": False,
    }
    return config


def _ssl_options() -> Dict[str, str]:
    env_to_option = {
        "SSL_CERTFILE": "ssl_certfile",
        "SSL_KEYFILE": "ssl_keyfile",
        "SSL_CA_CERTS": "ssl_ca_certs",
        "SSL_KEYFILE_PASSWORD": "ssl_keyfile_password",
    }
    return {option: os.environ[name] for name, option in env_to_option.items() if os.getenv(name)}


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload_enabled = os.getenv("RELOAD", "false").lower() in {"1", "true", "yes", "on"}
    log_level = os.getenv("LOG_LEVEL", "info")
    forwarded_allow_ips = os.getenv("FORWARDED_ALLOW_IPS", "*")

    uvicorn.run(
        "surgidb.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level=log_level,
        log_config=_log_config(log_level),
        proxy_headers=True,
        forwarded_allow_ips=forwarded_allow_ips,
        **_ssl_options(),
    )


if __name__ == "__main__":
    main()
