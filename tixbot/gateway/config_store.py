"""
Gateway config store

Owns the on-disk gateway config (<state_dir>/openclaw.json), the single
source of truth for the gateway port and bearer token.

Bootstrap rules:
- A corrupt or unreadable file is logged and treated as absent.
- An existing token is kept if it is a non-empty string after trimming.
- The full minimal config is rewritten on every bootstrap, so first runs and
  later runs converge on the same file shape. With a valid token on disk the
  port and token are unchanged; only the formatting is normalized.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from tixbot.errors import ConfigWriteError
from tixbot.log_sink import LogSink, parse_level
from tixbot.platform_utils import get_config_path
from tixbot.settings import DEFAULT_GATEWAY_PORT
from tixbot.utils.atomic_write import atomic_write_json
from tixbot.gateway.token import normalize_token, resolve_token

logger = logging.getLogger(__name__)


class GatewayAuth(BaseModel):
    mode: str = "token"
    token: str = Field(..., min_length=1)


class ControlUiConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    allow_insecure_auth: bool = Field(default=True, alias="allowInsecureAuth")


class GatewayConfig(BaseModel):
    """Persisted gateway settings (the `gateway` object of openclaw.json)"""

    model_config = ConfigDict(populate_by_name=True)

    mode: str = "local"
    bind: str = "loopback"
    port: int = Field(default=DEFAULT_GATEWAY_PORT, ge=1, le=65535)
    auth: GatewayAuth
    control_ui: ControlUiConfig = Field(default_factory=ControlUiConfig, alias="controlUi")

    @classmethod
    def minimal(cls, token: str, port: int = DEFAULT_GATEWAY_PORT) -> "GatewayConfig":
        """Local, loopback-bound, token-authenticated config with the control UI enabled"""
        return cls(port=port, auth=GatewayAuth(token=token))

    def to_document(self) -> dict:
        """Full file content: {"gateway": {...}} with camelCase keys"""
        return {"gateway": self.model_dump(by_alias=True)}


@dataclass(frozen=True)
class ResolvedGateway:
    """Port and token fixed for the lifetime of one supervised gateway"""

    port: int
    token: str
    state_dir: Path
    config_path: Path

    def as_tuple(self) -> Tuple[int, str]:
        return self.port, self.token


def extract_token(document: Any) -> str:
    """Pull gateway.auth.token out of a parsed config, or "" if absent/invalid"""
    if not isinstance(document, dict):
        return ""
    gateway = document.get("gateway")
    if not isinstance(gateway, dict):
        return ""
    auth = gateway.get("auth")
    if not isinstance(auth, dict):
        return ""
    return normalize_token(auth.get("token"))


class ConfigStore:
    """Reads and rewrites the gateway config in a state directory"""

    def __init__(
        self,
        state_dir: Union[str, Path],
        log: Optional[LogSink] = None,
        port: int = DEFAULT_GATEWAY_PORT,
    ):
        self.state_dir = Path(state_dir)
        self.config_path = get_config_path(self.state_dir)
        self.port = port
        self._log = log

    def _write_log(self, level: str, message: str) -> None:
        if self._log is not None:
            self._log.write(level, message)
        else:
            logger.log(parse_level(level), message)

    def read_existing_token(self) -> str:
        """
        Return the persisted token, or "" when there is none.

        Parse failures are logged as warnings and never raised.
        """
        if not self.config_path.exists():
            return ""

        try:
            raw = self.config_path.read_text(encoding="utf-8")
            document = json.loads(raw)
        except (OSError, UnicodeDecodeError, ValueError, RecursionError) as e:
            self._write_log("warn", f"Failed to parse config, regenerating: {e}")
            return ""

        if not isinstance(document, dict):
            kind = type(document).__name__
            self._write_log("warn", f"Failed to parse config, regenerating: root is {kind}, not an object")
            return ""

        return extract_token(document)

    def ensure_config(self) -> ResolvedGateway:
        """
        Bootstrap the gateway config.

        Returns:
            ResolvedGateway: The port and token the gateway will be started with

        Raises:
            TokenGenerationError: No token on disk and no secure random source
            ConfigWriteError: The state directory is not writable
        """
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigWriteError(f"Cannot create state dir {self.state_dir}: {e}") from e

        token = resolve_token(self.read_existing_token())
        config = GatewayConfig.minimal(token, port=self.port)

        try:
            atomic_write_json(self.config_path, config.to_document())
        except OSError as e:
            raise ConfigWriteError(f"Cannot write gateway config {self.config_path}: {e}") from e

        self._write_log("info", f"Wrote gateway config: {self.config_path}")

        return ResolvedGateway(
            port=config.port,
            token=token,
            state_dir=self.state_dir,
            config_path=self.config_path,
        )


def ensure_config(state_dir: Union[str, Path], log: Optional[LogSink] = None) -> Tuple[int, str]:
    """Bootstrap the config in state_dir and return (port, token)"""
    return ConfigStore(state_dir, log=log).ensure_config().as_tuple()
