"""Gateway bootstrap and supervision: config store, token authority, process supervisor"""

from tixbot.gateway.config_store import ConfigStore, GatewayConfig, ResolvedGateway, ensure_config
from tixbot.gateway.supervisor import Supervisor, SupervisorState
from tixbot.gateway.token import generate_token, resolve_token

__all__ = [
    "ConfigStore",
    "GatewayConfig",
    "ResolvedGateway",
    "ensure_config",
    "Supervisor",
    "SupervisorState",
    "generate_token",
    "resolve_token",
]
