from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import requests
from dotenv import load_dotenv


@dataclass(slots=True)
class HttpSettings:
    """Connection settings for the embedding service client."""

    timeout: float = 1200.0
    user_agent: str = "pom-retrieval"
    base_url: Optional[str] = None
    session: Optional[requests.Session] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.base_url is not None and not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {self.base_url!r}")

    def build_session(self) -> requests.Session:
        session = self.session if self.session is not None else requests.Session()
        if self.user_agent:
            session.headers["User-Agent"] = self.user_agent
        return session


def load_env_file(path: Path | str = ".env", *, override: bool = False) -> bool:
    """Export ``POM_*`` variables from a dotenv file into the process environment.

    Returns False when the file does not exist. Call explicitly; importing the
    package never touches the environment.
    """

    env_path = Path(path).expanduser()
    if not env_path.is_file():
        return False
    load_dotenv(dotenv_path=env_path, override=override)
    return True


__all__ = ["HttpSettings", "load_env_file"]
