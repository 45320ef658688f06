"""
Harness settings, read from the environment and overridden by CLI flags.

    ESCROW_ENDPOINTS       name=url[,name=url...] remote implementations
    ESCROW_DISABLED        comma-separated endpoint names to skip
    VECTOR_DIR             vector directory (default: vectors)
    RESULT_DIR             report directory (default: results)
    VERBOSE                true/1/yes for debug logging
    STOP_ON_FIRST_FAILURE  true/1/yes
    REQUEST_TIMEOUT        seconds per HTTP request (default: 30)
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List

REFERENCE_CLIENT = "python-spec"

_TRUTHY = ("true", "1", "yes")


@dataclass
class ClientConfig:
    """One remote implementation."""
    name: str
    endpoint: str
    enabled: bool = True
    timeout: float = 30.0


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def _env_list(name: str) -> List[str]:
    return [item.strip() for item in os.environ.get(name, "").split(",") if item.strip()]


def parse_endpoints(entries: List[str], timeout: float) -> Dict[str, ClientConfig]:
    clients: Dict[str, ClientConfig] = {}
    for entry in entries:
        name, _, endpoint = entry.partition("=")
        if not name or not endpoint:
            raise ValueError(f"endpoint must be name=url: {entry!r}")
        clients[name] = ClientConfig(name=name, endpoint=endpoint.rstrip("/"), timeout=timeout)
    return clients


@dataclass
class HarnessConfig:
    # The in-process reference always runs; these are the remote clients.
    clients: Dict[str, ClientConfig] = field(default_factory=dict)
    vector_dir: str = "vectors"
    result_dir: str = "results"
    stop_on_first_failure: bool = False
    verbose: bool = False
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "HarnessConfig":
        config = cls(
            vector_dir=os.environ.get("VECTOR_DIR", cls.vector_dir),
            result_dir=os.environ.get("RESULT_DIR", cls.result_dir),
            stop_on_first_failure=_env_flag("STOP_ON_FIRST_FAILURE"),
            verbose=_env_flag("VERBOSE"),
        )
        timeout = os.environ.get("REQUEST_TIMEOUT")
        if timeout:
            config.request_timeout = float(timeout)

        config.clients = parse_endpoints(_env_list("ESCROW_ENDPOINTS"), config.request_timeout)
        for name in _env_list("ESCROW_DISABLED"):
            if name in config.clients:
                config.clients[name].enabled = False
        return config

    def get_enabled_clients(self) -> Dict[str, ClientConfig]:
        return {name: c for name, c in self.clients.items() if c.enabled}
